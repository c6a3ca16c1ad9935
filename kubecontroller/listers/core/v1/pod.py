"""
Pod lister implementation.
"""

from typing import List, Optional

from kubecontroller.informers.core.v1.pod import NODE_NAME_INDEX
from kubecontroller.listers.base_lister import BaseLister, NamespaceLister
from kubecontroller.models import ResourceRecord


class PodLister(BaseLister):
    """
    PodLister is able to list and get Pod records.
    """

    def pods(self, namespace: str) -> "NamespacedPodLister":
        """
        Return a lister for the given namespace.

        Args:
            namespace: The namespace to list in

        Returns:
            A namespaced lister
        """
        return NamespacedPodLister(self._indexer, namespace)

    def get(self, name: str, namespace: str) -> Optional[ResourceRecord]:
        """
        Get a specific Pod by name and namespace.

        Args:
            name: Name of the Pod
            namespace: Namespace of the Pod

        Returns:
            The Pod record or None if not found
        """
        return super().get(name, namespace)

    def on_node(self, node_name: str) -> List[ResourceRecord]:
        """
        List the Pods bound to a node.

        Args:
            node_name: Name of the Node

        Returns:
            List of Pod records scheduled on that node
        """
        return self._indexer.by_index(NODE_NAME_INDEX, node_name)


class NamespacedPodLister(NamespaceLister):
    """
    NamespacedPodLister is able to list and get Pod records in a specific namespace.
    """
