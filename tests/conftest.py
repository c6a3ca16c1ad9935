"""Shared fixtures for kube-controller tests.

Provides an in-memory ResourceSource whose list and watch behaviour is
scripted per resource type, plus factories for raw API objects and records,
so informer tests run without a cluster.
"""

import queue
import threading
import time
from typing import Any, Dict, List, Optional

import pytest

from kubecontroller.api.source import ListResult, ResourceSource, WatchEvent
from kubecontroller.constants import constants
from kubecontroller.errors import EmitterBackpressureError
from kubecontroller.models import (
    DerivedEvent,
    NodeCondition,
    NodeInfo,
    PodInfo,
    ResourceIdentity,
    ResourceRecord,
    ServiceInfo,
    ServicePort,
)

# ---------------------------------------------------------------------------
# Raw object factories (dict shape, as decoded from the API server's JSON)
# ---------------------------------------------------------------------------


def node_obj(name: str, rv: str = "1", ready: bool = True) -> Dict[str, Any]:
    return {
        "metadata": {"name": name, "resourceVersion": rv},
        "spec": {},
        "status": {
            "allocatable": {"cpu": "4", "memory": "16Gi"},
            "conditions": [{"type": "Ready", "status": "True" if ready else "False"}],
        },
    }


def pod_obj(name: str, namespace: str = "default", rv: str = "1", node: Optional[str] = "n1") -> Dict[str, Any]:
    return {
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": rv},
        "spec": {"nodeName": node},
        "status": {"phase": "Running"},
    }


def service_obj(
    name: str,
    namespace: str = "default",
    rv: str = "1",
    ports: Optional[List[Dict[str, Any]]] = None,
    external_name: Optional[str] = None,
) -> Dict[str, Any]:
    spec = {"type": "NodePort", "ports": ports if ports is not None else []}
    if external_name is not None:
        spec["externalName"] = external_name
    return {
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": rv},
        "spec": spec,
    }


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------


def make_node(name: str = "n1", rv: str = "1") -> ResourceRecord:
    return ResourceRecord(
        resource_type=constants.RESOURCE_NODE,
        identity=ResourceIdentity("", name),
        resource_version=rv,
        payload=NodeInfo(conditions=(NodeCondition("Ready", "True"),)),
    )


def make_pod(name: str = "p1", namespace: str = "default", rv: str = "1", node: Optional[str] = "n1") -> ResourceRecord:
    return ResourceRecord(
        resource_type=constants.RESOURCE_POD,
        identity=ResourceIdentity(namespace, name),
        resource_version=rv,
        payload=PodInfo(node_name=node, phase="Running"),
    )


def make_service(
    name: str = "svc-a",
    namespace: str = "default",
    rv: str = "1",
    node_ports: Optional[List[Optional[int]]] = None,
    external_name: Optional[str] = None,
) -> ResourceRecord:
    ports = tuple(
        ServicePort(port=8080 + i, name=f"p{i}", node_port=np)
        for i, np in enumerate(node_ports or [])
    )
    return ResourceRecord(
        resource_type=constants.RESOURCE_SERVICE,
        identity=ResourceIdentity(namespace, name),
        resource_version=rv,
        payload=ServiceInfo(service_type="NodePort", ports=ports, external_name=external_name),
    )


# ---------------------------------------------------------------------------
# Fake resource source
# ---------------------------------------------------------------------------

_CLOSE = object()


class FakeResourceSource(ResourceSource):
    """
    In-memory ResourceSource.

    list() returns the scripted list results for a type in order (the last
    one repeats); an Exception in the script is raised instead. watch()
    returns a generator reading from a per-type queue that tests feed with
    push(), fail() and close_stream(); it ends on close_stream() or stop().
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._lists = {}  # type: Dict[str, List[Any]]
        self._streams = {}  # type: Dict[str, queue.Queue]
        self.list_calls = []  # type: List[Dict[str, Any]]
        self.watch_calls = []  # type: List[Dict[str, Any]]

    def set_list(self, resource_type: str, items: List[Any], resource_version: str = "1") -> None:
        """Replace the list script for a type with a single result."""
        with self._lock:
            self._lists[resource_type] = [ListResult(list(items), resource_version)]

    def script_list(self, resource_type: str, *results: Any) -> None:
        with self._lock:
            self._lists.setdefault(resource_type, []).extend(results)

    def _stream(self, resource_type: str) -> queue.Queue:
        with self._lock:
            return self._streams.setdefault(resource_type, queue.Queue())

    def push(self, resource_type: str, event_type: str, obj: Any, rv: str = "") -> None:
        if not rv and isinstance(obj, dict):
            rv = obj.get("metadata", {}).get("resourceVersion", "")
        self._stream(resource_type).put(WatchEvent(event_type, obj, rv))

    def fail(self, resource_type: str, error: Exception) -> None:
        self._stream(resource_type).put(error)

    def close_stream(self, resource_type: str) -> None:
        self._stream(resource_type).put(_CLOSE)

    def list(self, resource_type, limit=None, timeout=None, **options):
        with self._lock:
            self.list_calls.append({"resource_type": resource_type, "limit": limit, "timeout": timeout})
            script = self._lists.get(resource_type) or [ListResult([], "0")]
            result = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(result, Exception):
            raise result
        return result

    def watch(self, resource_type, resource_version, timeout_seconds=None, **options):
        with self._lock:
            self.watch_calls.append({"resource_type": resource_type, "resource_version": resource_version})
        stream = self._stream(resource_type)
        while True:
            item = stream.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def stop(self, resource_type=None):
        with self._lock:
            types = [resource_type] if resource_type else list(self._streams)
        for t in types:
            self.close_stream(t)


class RecordingSink:
    """EmitterSink double that records events and can fail for chosen service names."""

    def __init__(self, fail_for=()):
        self.events = []  # type: List[DerivedEvent]
        self._fail_for = set(fail_for)
        self._lock = threading.Lock()

    def send(self, event: DerivedEvent) -> None:
        if event.service_name in self._fail_for:
            raise EmitterBackpressureError(f"channel full for {event.service_name}")
        with self._lock:
            self.events.append(event)

    def close(self, drain=True, timeout=None) -> None:
        pass


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll predicate until it returns truthy or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def source() -> FakeResourceSource:
    return FakeResourceSource()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
