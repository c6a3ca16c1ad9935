"""
Pod informer implementation.
"""

from typing import List

from kubecontroller.constants import constants
from kubecontroller.converters import pod_to_record
from kubecontroller.informers.core.v1.base import TypedInformer
from kubecontroller.models import ResourceRecord

NODE_NAME_INDEX = "nodeName"


def node_name_index_func(record: ResourceRecord) -> List[str]:
    """Index pods by the node they are bound to; unscheduled pods are not indexed."""
    node_name = getattr(record.payload, "node_name", None)
    return [node_name] if node_name else []


class PodInformer(TypedInformer):
    """
    PodInformer provides access to a shared informer and lister for Pods.
    """

    resource_type = constants.RESOURCE_POD
    transform = staticmethod(pod_to_record)
    indexers = {NODE_NAME_INDEX: node_name_index_func}

    def lister(self):
        """
        Get a lister for this resource.

        Returns:
            A PodLister
        """
        from kubecontroller.listers.core.v1.pod import PodLister

        return PodLister(self.informer().get_indexer())
