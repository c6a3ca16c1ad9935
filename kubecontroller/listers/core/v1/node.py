"""
Node lister implementation.
"""

from typing import List, Optional

from kubecontroller.listers.base_lister import BaseLister
from kubecontroller.models import ResourceRecord


class NodeLister(BaseLister):
    """
    NodeLister is able to list and get Node records.
    """

    def list(self) -> List[ResourceRecord]:
        """
        List all Nodes.

        Returns:
            List of Node records
        """
        return super().list()

    def get(self, name: str) -> Optional[ResourceRecord]:
        """
        Get a specific Node by name.

        Args:
            name: Name of the Node

        Returns:
            The Node record or None if not found
        """
        return super().get(name)

