"""Unit tests for the handler WorkQueue.

Tests cover: ordering per key, worker survival after exceptions, drain and
discard shutdown, backpressure, and refusing work after close.
"""

import threading

import pytest

from kubecontroller.informers.workqueue import WorkQueue
from tests.conftest import wait_until

# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


class TestProcessing:
    def test_single_worker_preserves_order(self) -> None:
        seen = []
        q = WorkQueue("test", seen.append)
        q.start()
        try:
            for i in range(50):
                assert q.put(f"key-{i % 3}", i)
            assert q.wait_idle(5)
            assert seen == list(range(50))
        finally:
            q.shutdown(timeout=5)

    def test_same_key_ordered_across_pool(self) -> None:
        seen = []
        lock = threading.Lock()

        def record(item):
            with lock:
                seen.append(item)

        q = WorkQueue("pool", record, workers=4)
        q.start()
        try:
            for i in range(100):
                q.put(("default", "p1") if i % 2 else ("default", "p2"), i)
            assert q.wait_idle(5)
        finally:
            q.shutdown(timeout=5)

        odd = [i for i in seen if i % 2]
        even = [i for i in seen if not i % 2]
        assert odd == sorted(odd)
        assert even == sorted(even)

    def test_worker_survives_exceptions(self) -> None:
        seen = []

        def flaky(item):
            if item == "boom":
                raise RuntimeError("handler failure")
            seen.append(item)

        q = WorkQueue("flaky", flaky)
        q.start()
        try:
            q.put("k", "boom")
            q.put("k", "after")
            assert q.wait_idle(5)
            assert seen == ["after"]
        finally:
            q.shutdown(timeout=5)

    def test_invalid_worker_count(self) -> None:
        with pytest.raises(ValueError):
            WorkQueue("bad", print, workers=0)


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------


class TestShutdown:
    def _blocked_queue(self, seen):
        gate = threading.Event()

        def slow(item):
            gate.wait(5)
            seen.append(item)

        q = WorkQueue("slow", slow)
        q.start()
        return q, gate

    def test_drain_runs_queued_items(self) -> None:
        seen = []
        q, gate = self._blocked_queue(seen)
        for i in range(5):
            q.put("k", i)
        gate.set()
        assert q.shutdown(drain=True, timeout=5)
        assert seen == [0, 1, 2, 3, 4]

    def test_discard_drops_queued_items(self) -> None:
        seen = []
        q = WorkQueue("unstarted", seen.append)
        for i in range(5):
            q.put("k", i)
        assert q.pending() == 5
        assert q.shutdown(drain=False, timeout=5)
        assert q.pending() == 0
        assert seen == []

    def test_put_refused_after_close(self) -> None:
        q = WorkQueue("closed", lambda item: None)
        q.start()
        q.close()
        assert not q.is_accepting()
        assert q.put("k", 1) is False
        assert q.shutdown(timeout=5)

    def test_shutdown_is_idempotent(self) -> None:
        q = WorkQueue("twice", lambda item: None)
        q.start()
        assert q.shutdown(timeout=5)
        assert q.shutdown(timeout=5)

    def test_shutdown_without_start(self) -> None:
        assert WorkQueue("idle", lambda item: None).shutdown(timeout=1)


class TestBackpressure:
    def test_put_blocks_until_space_then_gives_up_on_close(self) -> None:
        gate = threading.Event()
        q = WorkQueue("tiny", lambda item: gate.wait(5), maxsize=1)
        q.start()
        q.put("k", 1)
        assert wait_until(lambda: q.pending() == 0)
        q.put("k", 2)

        result = {}
        producer = threading.Thread(target=lambda: result.setdefault("queued", q.put("k", 3)))
        producer.start()
        producer.join(0.3)
        assert producer.is_alive()

        q.close()
        producer.join(5)
        assert result["queued"] is False
        gate.set()
        assert q.shutdown(timeout=5)
