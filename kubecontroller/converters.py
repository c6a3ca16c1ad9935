"""
Transform functions from API objects to ResourceRecords.

Objects may be typed kubernetes.client models (V1Node, V1Pod, V1Service) or
plain dicts as decoded from raw JSON; both shapes are accepted.
"""

from typing import Any, Callable, Dict, Optional

from kubecontroller.constants import constants
from kubecontroller.models import (
    NodeCondition,
    NodeInfo,
    PodInfo,
    ResourceIdentity,
    ResourceRecord,
    ServiceInfo,
    ServicePort,
)

TransformFunc = Callable[[Any], ResourceRecord]


def _field(obj: Any, attr: str, key: Optional[str] = None, default: Any = None) -> Any:
    """Read attr from a typed model, or key (camelCase) from a dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(key or attr)
    else:
        value = getattr(obj, attr, None)
    return default if value is None else value


def object_identity(obj: Any, cluster_scoped: bool = False) -> ResourceIdentity:
    metadata = _field(obj, "metadata")
    name = _field(metadata, "name", default="")
    namespace = "" if cluster_scoped else _field(metadata, "namespace", default="")
    return ResourceIdentity(namespace, name)


def object_resource_version(obj: Any) -> str:
    metadata = _field(obj, "metadata")
    return _field(metadata, "resource_version", "resourceVersion", default="")


def node_to_record(obj: Any) -> ResourceRecord:
    status = _field(obj, "status")
    spec = _field(obj, "spec")
    conditions = tuple(
        NodeCondition(
            type=_field(c, "type", default=""),
            status=_field(c, "status", default="Unknown"),
            reason=_field(c, "reason"),
        )
        for c in _field(status, "conditions", default=[])
    )
    allocatable = {
        str(k): str(v) for k, v in _field(status, "allocatable", default={}).items()
    }
    return ResourceRecord(
        resource_type=constants.RESOURCE_NODE,
        identity=object_identity(obj, cluster_scoped=True),
        resource_version=object_resource_version(obj),
        payload=NodeInfo(
            allocatable=allocatable,
            conditions=conditions,
            unschedulable=bool(_field(spec, "unschedulable", default=False)),
        ),
    )


def pod_to_record(obj: Any) -> ResourceRecord:
    return ResourceRecord(
        resource_type=constants.RESOURCE_POD,
        identity=object_identity(obj),
        resource_version=object_resource_version(obj),
        payload=PodInfo(
            node_name=_field(_field(obj, "spec"), "node_name", "nodeName"),
            phase=_field(_field(obj, "status"), "phase"),
        ),
    )


def service_to_record(obj: Any) -> ResourceRecord:
    spec = _field(obj, "spec")
    ports = tuple(
        ServicePort(
            port=_field(p, "port"),
            name=_field(p, "name"),
            protocol=_field(p, "protocol", default="TCP"),
            node_port=_field(p, "node_port", "nodePort"),
        )
        for p in _field(spec, "ports", default=[])
    )
    return ResourceRecord(
        resource_type=constants.RESOURCE_SERVICE,
        identity=object_identity(obj),
        resource_version=object_resource_version(obj),
        payload=ServiceInfo(
            service_type=_field(spec, "type", default="ClusterIP"),
            ports=ports,
            external_name=_field(spec, "external_name", "externalName"),
        ),
    )


DEFAULT_TRANSFORMS: Dict[str, TransformFunc] = {
    constants.RESOURCE_NODE: node_to_record,
    constants.RESOURCE_POD: pod_to_record,
    constants.RESOURCE_SERVICE: service_to_record,
}


def transform_for(resource_type: str) -> TransformFunc:
    """
    Get the default transform for a resource type.

    Unknown types get a generic record whose payload is the raw object.
    """
    transform = DEFAULT_TRANSFORMS.get(resource_type)
    if transform is not None:
        return transform

    def generic(obj: Any) -> ResourceRecord:
        return ResourceRecord(
            resource_type=resource_type,
            identity=object_identity(
                obj, resource_type in constants.CLUSTER_SCOPED_RESOURCE_TYPES
            ),
            resource_version=object_resource_version(obj),
            payload=obj,
        )

    return generic
