"""
Typed records mirrored from the cluster, change notifications, and derived events.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True, order=True)
class ResourceIdentity:
    """(namespace, name) pair; unique per resource type and used as the cache key."""

    namespace: str
    name: str

    @property
    def key(self) -> str:
        """The "namespace/name" key, or just "name" for cluster-scoped objects."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @classmethod
    def from_key(cls, key: str) -> "ResourceIdentity":
        namespace, sep, name = key.partition("/")
        if not sep:
            return cls("", namespace)
        return cls(namespace, name)

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class NodeCondition:
    type: str
    status: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class NodeInfo:
    allocatable: Dict[str, str] = field(default_factory=dict)
    conditions: Tuple[NodeCondition, ...] = ()
    unschedulable: bool = False

    def is_ready(self) -> bool:
        return any(c.type == "Ready" and c.status == "True" for c in self.conditions)


@dataclass(frozen=True)
class PodInfo:
    node_name: Optional[str] = None
    phase: Optional[str] = None


@dataclass(frozen=True)
class ServicePort:
    port: int
    name: Optional[str] = None
    protocol: str = "TCP"
    node_port: Optional[int] = None


@dataclass(frozen=True)
class ServiceInfo:
    service_type: str = "ClusterIP"
    ports: Tuple[ServicePort, ...] = ()
    external_name: Optional[str] = None


Payload = Union[NodeInfo, PodInfo, ServiceInfo, Any]


@dataclass(frozen=True)
class ResourceRecord:
    """
    The latest known representation of one object of a given resource type.

    Records are immutable; a newer version of the object replaces the record
    in the cache instead of mutating it.
    """

    resource_type: str
    identity: ResourceIdentity
    resource_version: str
    payload: Payload = None

    @property
    def key(self) -> str:
        return self.identity.key

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def namespace(self) -> str:
        return self.identity.namespace


def compare_resource_versions(a: Optional[str], b: Optional[str]) -> int:
    """
    Compare two resource versions.

    Versions issued by the API server are etcd revisions and compare
    numerically. Non-numeric versions fall back to length-then-lexical
    ordering so that "10" still sorts after "9". An empty version is lower
    than any other.

    Returns:
        -1, 0 or 1 like a classic cmp function
    """
    a = a or ""
    b = b or ""
    if a == b:
        return 0
    if not a:
        return -1
    if not b:
        return 1
    if a.isdigit() and b.isdigit():
        ia, ib = int(a), int(b)
        return (ia > ib) - (ia < ib)
    ka, kb = (len(a), a), (len(b), b)
    return (ka > kb) - (ka < kb)


class NotificationKind(str, enum.Enum):
    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"
    RESYNCED = "Resynced"
    SYNC_ERROR = "SyncError"


@dataclass(frozen=True)
class ResyncSnapshot:
    """A complete list of one resource type as returned by a single list call."""

    records: Tuple[ResourceRecord, ...]
    resource_version: str


@dataclass(frozen=True)
class ChangeNotification:
    """
    One observed change to one resource type.

    Added/Modified carry the new record, Deleted carries the last known
    record, Resynced carries a full snapshot and SyncError carries neither.
    old_record is filled in by the cache for Modified and Deleted.
    """

    kind: NotificationKind
    resource_type: str
    record: Optional[ResourceRecord] = None
    resume_token: str = ""
    old_record: Optional[ResourceRecord] = None
    snapshot: Optional[ResyncSnapshot] = None
    reason: str = ""

    @property
    def identity(self) -> Optional[ResourceIdentity]:
        if self.record is not None:
            return self.record.identity
        if self.old_record is not None:
            return self.old_record.identity
        return None

    @classmethod
    def added(cls, record: ResourceRecord, resume_token: str = "") -> "ChangeNotification":
        return cls(NotificationKind.ADDED, record.resource_type, record, resume_token)

    @classmethod
    def modified(
        cls,
        record: ResourceRecord,
        resume_token: str = "",
        old_record: Optional[ResourceRecord] = None,
    ) -> "ChangeNotification":
        return cls(
            NotificationKind.MODIFIED,
            record.resource_type,
            record,
            resume_token,
            old_record=old_record,
        )

    @classmethod
    def deleted(cls, record: ResourceRecord, resume_token: str = "") -> "ChangeNotification":
        return cls(NotificationKind.DELETED, record.resource_type, record, resume_token)

    @classmethod
    def resynced(
        cls, resource_type: str, records: List[ResourceRecord], resource_version: str
    ) -> "ChangeNotification":
        return cls(
            NotificationKind.RESYNCED,
            resource_type,
            resume_token=resource_version,
            snapshot=ResyncSnapshot(tuple(records), resource_version),
        )

    @classmethod
    def sync_error(cls, resource_type: str, reason: str = "") -> "ChangeNotification":
        return cls(NotificationKind.SYNC_ERROR, resource_type, reason=reason)


@dataclass(frozen=True)
class DerivedEvent:
    """(serviceName, nodePort) pair handed to the emitter sink."""

    service_name: str
    node_port: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {"serviceName": self.service_name, "nodePort": self.node_port}
