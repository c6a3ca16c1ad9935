"""
Bounded work queue that moves handler execution off the watch threads.
"""

import queue
import threading
import time
from typing import Any, Callable, Hashable, List, Optional

from kubecontroller.utils.logger import logger

_SHUTDOWN = object()

# How long a blocked put() waits before re-checking whether the queue is closing
_PUT_SLICE_SECONDS = 0.1


class WorkQueue:
    """
    WorkQueue runs process_func for each submitted item on a pool of worker threads.

    Each worker owns a bounded queue and items are routed by key, so all work
    for one key runs on the same worker in submission order. With a single
    worker every item runs in submission order.
    """

    def __init__(
        self,
        name: str,
        process_func: Callable[[Any], None],
        workers: int = 1,
        maxsize: int = 1024,
    ):
        """
        Initialize a new WorkQueue.

        Args:
            name: Name used for worker threads and log lines
            process_func: Called with each item on a worker thread
            workers: Number of worker threads
            maxsize: Capacity of each worker's queue
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._name = name
        self._process_func = process_func
        self._queues = [queue.Queue(maxsize=maxsize) for _ in range(workers)]  # type: List[queue.Queue]
        self._threads = []  # type: List[threading.Thread]
        self._lock = threading.Lock()
        self._accepting = True
        self._started = False
        self._shut_down = False

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
            for i, q in enumerate(self._queues):
                t = threading.Thread(
                    target=self._worker,
                    args=(q,),
                    name=f"{self._name}-worker-{i}",
                    daemon=True,
                )
                t.start()
                self._threads.append(t)

    def _worker(self, q: queue.Queue) -> None:
        while True:
            item = q.get()
            try:
                if item is _SHUTDOWN:
                    return
                self._process_func(item)
            except Exception as e:
                logger.exception(f"Error processing work item in {self._name}: {e}")
            finally:
                q.task_done()

    def _queue_for(self, key: Hashable) -> queue.Queue:
        return self._queues[hash(key) % len(self._queues)]

    def put(self, key: Hashable, item: Any) -> bool:
        """
        Submit an item, blocking while the target worker's queue is full.

        Args:
            key: Routing key; equal keys are processed in order on one worker
            item: The item to hand to process_func

        Returns:
            True if the item was queued, False if the queue is shutting down
        """
        q = self._queue_for(key)
        while self._accepting:
            try:
                q.put(item, timeout=_PUT_SLICE_SECONDS)
                return True
            except queue.Full:
                logger.debug(f"{self._name} queue full, waiting for workers")
        return False

    def close(self) -> None:
        """Refuse new items; queued items stay queued until shutdown()."""
        self._accepting = False

    def pending(self) -> int:
        return sum(q.qsize() for q in self._queues)

    def is_accepting(self) -> bool:
        return self._accepting

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every queued item has been processed.

        Returns:
            True if the queue became idle before the timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if all(q.unfinished_tasks == 0 for q in self._queues):
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.01)

    def shutdown(self, drain: bool = True, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting work and stop the workers.

        Args:
            drain: Finish queued items first (True) or discard them (False)
            timeout: Maximum seconds to wait for the workers

        Returns:
            True if all workers exited within the timeout
        """
        with self._lock:
            first_call = not self._shut_down
            self._shut_down = True
            self._accepting = False
        if not first_call:
            return self._join(timeout)

        discarded = 0
        if not drain:
            for q in self._queues:
                while True:
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        break
                    q.task_done()
                    discarded += 1
            if discarded:
                logger.info(f"Discarded {discarded} pending items from {self._name}")

        if not self._started:
            return True
        deadline = None if timeout is None else time.monotonic() + timeout
        for q in self._queues:
            while True:
                try:
                    q.put(_SHUTDOWN, timeout=_PUT_SLICE_SECONDS)
                    break
                except queue.Full:
                    if deadline is not None and time.monotonic() >= deadline:
                        logger.warning(f"Timed out signalling workers of {self._name} to stop")
                        return False
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        return self._join(remaining)

    def _join(self, timeout: Optional[float]) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        for t in self._threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            t.join(remaining)
        alive = [t.name for t in self._threads if t.is_alive()]
        if alive:
            logger.warning(f"Workers still running after shutdown of {self._name}: {', '.join(alive)}")
            return False
        return True
