"""
Node informer implementation.
"""

from kubecontroller.constants import constants
from kubecontroller.converters import node_to_record
from kubecontroller.informers.core.v1.base import TypedInformer


class NodeInformer(TypedInformer):
    """
    NodeInformer provides access to a shared informer and lister for Nodes.
    """

    resource_type = constants.RESOURCE_NODE
    transform = staticmethod(node_to_record)

    def lister(self):
        """
        Get a lister for this resource.

        Returns:
            A NodeLister
        """
        from kubecontroller.listers.core.v1.node import NodeLister

        return NodeLister(self.informer().get_indexer())
