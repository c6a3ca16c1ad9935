"""
NodeReconciler reacts to new nodes by announcing every known service port.
"""

from typing import List, Optional

from tabulate import tabulate

from kubecontroller.constants import constants
from kubecontroller.emitter.sink import EmitterSink
from kubecontroller.errors import EmitError
from kubecontroller.informers.shared_informer import ResourceEventHandler
from kubecontroller.listers.core.v1.pod import PodLister
from kubecontroller.listers.core.v1.service import ServiceLister
from kubecontroller.models import DerivedEvent, ResourceRecord, ServiceInfo
from kubecontroller.utils.logger import logger


class NodeReconciler(ResourceEventHandler[ResourceRecord]):
    """
    NodeReconciler handles node notifications.

    On every added node it reads the pod cache (logged only) and then the
    service cache, and sends one DerivedEvent per service to the sink. The
    two reads are separate point-in-time snapshots and are not guaranteed
    to be consistent with each other.

    Updates and deletions of nodes are ignored.
    """

    def __init__(
        self,
        pod_lister: PodLister,
        service_lister: ServiceLister,
        sink: EmitterSink,
        port_mode: str = constants.PORT_MODE_FIRST,
    ):
        """
        Initialize a new NodeReconciler.

        Args:
            pod_lister: Read access to the pod cache
            service_lister: Read access to the service cache
            sink: Where derived events are sent
            port_mode: "first" emits only the first port of a service,
                "all" emits one event per port
        """
        if port_mode not in constants.PORT_MODES:
            raise ValueError(f"Unknown port mode {port_mode!r}, expected one of {constants.PORT_MODES}")
        self._pods = pod_lister
        self._services = service_lister
        self._sink = sink
        self._port_mode = port_mode

    def on_add(self, obj: ResourceRecord) -> None:
        self.reconcile_node(obj)

    def reconcile_node(self, obj: ResourceRecord) -> int:
        """
        Emit derived events for a node that was added.

        Args:
            obj: The added Node record

        Returns:
            The number of events the sink accepted
        """
        node_name = obj.name
        ready = getattr(obj.payload, "is_ready", None)
        logger.info(f"Node {node_name} added (ready={ready() if ready else 'unknown'})")
        self._log_pods(node_name)

        sent = 0
        services = self._services.list()
        for service in services:
            for event in self.derive_events(service):
                try:
                    self._sink.send(event)
                except EmitError as e:
                    logger.warning(f"Could not emit event for {service.identity}: {e}")
                    continue
                except Exception as e:
                    logger.exception(f"Unexpected error emitting event for {service.identity}: {e}")
                    continue
                sent += 1
        logger.info(f"Node {node_name}: emitted {sent} events for {len(services)} services")
        return sent

    def on_update(self, old_obj: ResourceRecord, new_obj: ResourceRecord) -> None:
        pass

    def on_delete(self, obj: ResourceRecord) -> None:
        pass

    def derive_events(self, service: ResourceRecord) -> List[DerivedEvent]:
        """
        Build the events for one service record.

        A service without ports yields nothing. A service without an
        external name is announced under its own name.

        Args:
            service: A Service record

        Returns:
            The events to send, possibly empty
        """
        info = service.payload
        if not isinstance(info, ServiceInfo):
            logger.warning(f"Skipping {service.identity}: not a service record")
            return []
        if not info.ports:
            logger.warning(f"Skipping service {service.identity}: no exposed ports")
            return []

        service_name = info.external_name
        if not service_name:
            logger.warning(f"Service {service.identity} has no external name, using {service.name}")
            service_name = service.name

        ports = info.ports if self._port_mode == constants.PORT_MODE_ALL else info.ports[:1]
        return [DerivedEvent(service_name, port.node_port) for port in ports]

    def _log_pods(self, node_name: str) -> None:
        pods = self._pods.list()
        logger.info(f"Pod cache holds {len(pods)} pods, {len(self._pods.on_node(node_name))} on {node_name}")
        if pods:
            logger.debug(
                "Pods:\n"
                + tabulate(
                    [[p.namespace, p.name, _pod_node(p), getattr(p.payload, "phase", "")] for p in pods],
                    headers=["NAMESPACE", "NAME", "NODE", "PHASE"],
                    tablefmt="plain",
                )
            )


def _pod_node(pod: ResourceRecord) -> Optional[str]:
    return getattr(pod.payload, "node_name", None)
