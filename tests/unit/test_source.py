"""Unit tests for the Kubernetes resource source.

CoreV1Api and kubernetes.watch.Watch are replaced with mocks; the tests
check call routing and the translation of client errors. The stop tests
drive a real kubernetes.watch.Watch over a response that never sends data.
"""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest
import urllib3
from kubernetes.client.rest import ApiException

from kubecontroller.api.source import KubernetesResourceSource, ListResult, check_connectivity
from kubecontroller.constants import constants
from kubecontroller.converters import pod_to_record
from kubecontroller.errors import (
    ConnectivityError,
    ResourceVersionExpiredError,
    TransientWatchError,
)
from kubecontroller.informers.watcher import ResourceWatcher
from tests.conftest import wait_until


class _StalledResponse:
    """Streaming response that sends one event and then blocks until it is shut down."""

    status = 200

    def __init__(self):
        self.interrupted = threading.Event()
        self.closed = False

    def stream(self, amt=None, decode_content=None):
        yield b'{"type": "ADDED", "object": {"metadata": {"name": "p1", "resourceVersion": "2"}}}\n'
        self.interrupted.wait(30)

    def shutdown(self):
        self.interrupted.set()

    def close(self):
        self.closed = True
        self.interrupted.set()

    def release_conn(self):
        pass


def _stalled_api(response):
    api = MagicMock()

    def list_pod_for_all_namespaces(**kwargs):
        return response

    api.list_pod_for_all_namespaces = list_pod_for_all_namespaces
    return api


def _list_response(items, rv):
    response = MagicMock()
    response.items = items
    response.metadata.resource_version = rv
    return response


# ---------------------------------------------------------------------------
# list()
# ---------------------------------------------------------------------------


class TestList:
    def test_nodes(self) -> None:
        api = MagicMock()
        api.list_node.return_value = _list_response(["n1"], "100")
        result = KubernetesResourceSource(api).list(constants.RESOURCE_NODE, limit=1, timeout=3)
        assert result.items == ["n1"]
        assert result.resource_version == "100"
        api.list_node.assert_called_once_with(limit=1, _request_timeout=3)

    def test_pods_all_namespaces(self) -> None:
        api = MagicMock()
        api.list_pod_for_all_namespaces.return_value = _list_response([], "5")
        KubernetesResourceSource(api).list(constants.RESOURCE_POD)
        api.list_pod_for_all_namespaces.assert_called_once_with()

    def test_services_in_namespace(self) -> None:
        api = MagicMock()
        api.list_namespaced_service.return_value = _list_response([], "5")
        KubernetesResourceSource(api, namespace="team-a").list(
            constants.RESOURCE_SERVICE, label_selector="app=web"
        )
        api.list_namespaced_service.assert_called_once_with("team-a", label_selector="app=web")

    def test_unsupported_type(self) -> None:
        with pytest.raises(ValueError):
            KubernetesResourceSource(MagicMock()).list("configmap")

    def test_gone_is_expired(self) -> None:
        api = MagicMock()
        api.list_node.side_effect = ApiException(status=410, reason="Gone")
        with pytest.raises(ResourceVersionExpiredError):
            KubernetesResourceSource(api).list(constants.RESOURCE_NODE)

    def test_server_error_is_transient(self) -> None:
        api = MagicMock()
        api.list_node.side_effect = ApiException(status=500, reason="Internal Server Error")
        with pytest.raises(TransientWatchError):
            KubernetesResourceSource(api).list(constants.RESOURCE_NODE)

    def test_network_error_is_transient(self) -> None:
        api = MagicMock()
        api.list_node.side_effect = urllib3.exceptions.MaxRetryError(None, "/api/v1/nodes")
        with pytest.raises(TransientWatchError):
            KubernetesResourceSource(api).list(constants.RESOURCE_NODE)


# ---------------------------------------------------------------------------
# watch()
# ---------------------------------------------------------------------------


class TestWatch:
    def _source_with_events(self, events):
        api = MagicMock()
        fake_watch = MagicMock()
        fake_watch.stream.return_value = iter(events)
        return api, fake_watch

    def test_events_are_translated(self) -> None:
        api, fake_watch = self._source_with_events(
            [
                {"type": "ADDED", "object": "obj-1", "raw_object": {"metadata": {"resourceVersion": "11"}}},
                {"type": "BOOKMARK", "object": None, "raw_object": {"metadata": {"resourceVersion": "12"}}},
            ]
        )
        with patch("kubecontroller.api.source.watch.Watch", return_value=fake_watch):
            events = list(KubernetesResourceSource(api).watch(constants.RESOURCE_NODE, "10", timeout_seconds=30))

        assert [(e.event_type, e.object, e.resource_version) for e in events] == [
            ("ADDED", "obj-1", "11"),
            ("BOOKMARK", None, "12"),
        ]
        args, kwargs = fake_watch.stream.call_args
        assert args[0].__wrapped__ is api.list_node
        assert kwargs["resource_version"] == "10"
        assert kwargs["timeout_seconds"] == 30
        assert kwargs["allow_watch_bookmarks"] is True

    def test_error_event_410(self) -> None:
        api, fake_watch = self._source_with_events(
            [{"type": "ERROR", "object": None, "raw_object": {"code": 410, "message": "too old resource version"}}]
        )
        with patch("kubecontroller.api.source.watch.Watch", return_value=fake_watch):
            with pytest.raises(ResourceVersionExpiredError):
                list(KubernetesResourceSource(api).watch(constants.RESOURCE_POD, "1"))

    def test_api_exception_410_from_stream(self) -> None:
        api = MagicMock()
        fake_watch = MagicMock()
        fake_watch.stream.side_effect = ApiException(status=410, reason="Expired")
        with patch("kubecontroller.api.source.watch.Watch", return_value=fake_watch):
            with pytest.raises(ResourceVersionExpiredError):
                list(KubernetesResourceSource(api).watch(constants.RESOURCE_POD, "1"))

    def test_stop_aborts_open_watch(self) -> None:
        api = MagicMock()
        fake_watch = MagicMock()
        fake_watch.stream.return_value = iter([{"type": "ADDED", "object": "o", "raw_object": {}}])
        source = KubernetesResourceSource(api)
        with patch("kubecontroller.api.source.watch.Watch", return_value=fake_watch):
            stream = source.watch(constants.RESOURCE_SERVICE, "1")
            next(stream)
            source.stop(constants.RESOURCE_SERVICE)
        fake_watch.stop.assert_called_once_with()

    def test_stop_interrupts_stalled_stream(self) -> None:
        response = _StalledResponse()
        source = KubernetesResourceSource(_stalled_api(response))
        received = []

        def consume():
            for event in source.watch(constants.RESOURCE_POD, "1"):
                received.append(event)

        consumer = threading.Thread(target=consume, daemon=True)
        consumer.start()
        assert wait_until(lambda: len(received) == 1)

        started = time.monotonic()
        source.stop(constants.RESOURCE_POD)
        consumer.join(5)

        assert not consumer.is_alive()
        assert time.monotonic() - started < 2
        assert response.closed
        assert received[0].resource_version == "2"

    def test_watcher_stop_returns_promptly(self) -> None:
        response = _StalledResponse()
        source = KubernetesResourceSource(_stalled_api(response))
        source.list = MagicMock(return_value=ListResult([], "1"))
        delivered = []
        watcher = ResourceWatcher(source, constants.RESOURCE_POD, pod_to_record, backoff=0.0)
        watcher.start(delivered.append)
        # The initial (empty) list, then the single watch event
        assert wait_until(lambda: len(delivered) == 2)

        started = time.monotonic()
        assert watcher.stop(timeout=10)
        assert time.monotonic() - started < 2
        assert response.closed


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------


class TestConnectivity:
    def test_success(self) -> None:
        api = MagicMock()
        api.list_node.return_value = _list_response([], "1")
        check_connectivity(KubernetesResourceSource(api), timeout=2)
        api.list_node.assert_called_once_with(limit=1, _request_timeout=2)

    def test_failure_raises_connectivity_error(self) -> None:
        api = MagicMock()
        api.list_node.side_effect = ApiException(status=401, reason="Unauthorized")
        with pytest.raises(ConnectivityError):
            check_connectivity(KubernetesResourceSource(api), timeout=2)
