"""
Base lister implementation that provides generic cache listing capabilities.
"""

from typing import List, Optional

from kubecontroller.constants import constants
from kubecontroller.informers.cache import Indexer
from kubecontroller.models import ResourceIdentity, ResourceRecord


class BaseLister:
    """
    BaseLister provides read-only access to an informer's cache.
    """

    def __init__(self, indexer: Indexer):
        """
        Initialize a new BaseLister.

        Args:
            indexer: The indexer to use for listing
        """
        self._indexer = indexer

    def list(self, namespace: Optional[str] = None) -> List[ResourceRecord]:
        """
        List all records in the cache, optionally filtered by namespace.

        Each call returns a point-in-time snapshot.

        Args:
            namespace: Optional namespace to filter by

        Returns:
            List of matching records
        """
        if not namespace:
            return self._indexer.list()
        return self._indexer.by_index(constants.NAMESPACE_INDEX, namespace)

    def get(self, name: str, namespace: Optional[str] = None) -> Optional[ResourceRecord]:
        """
        Get a record by name and namespace.

        Args:
            name: Name of the object
            namespace: Namespace of the object (for namespaced resources)

        Returns:
            The matching record or None if not found
        """
        return self._indexer.get(ResourceIdentity(namespace or "", name))


class NamespaceLister(BaseLister):
    """
    NamespaceLister provides methods to list resources in a specific namespace.
    """

    def __init__(self, indexer: Indexer, namespace: str):
        """
        Initialize a new NamespaceLister.

        Args:
            indexer: The indexer to use
            namespace: The namespace to restrict listing to
        """
        super().__init__(indexer)
        self._namespace = namespace

    def list(self) -> List[ResourceRecord]:
        """
        List all records in the namespace.

        Returns:
            List of records in the namespace
        """
        return super().list(namespace=self._namespace)

    def get(self, name: str) -> Optional[ResourceRecord]:
        """
        Get a record by name in this namespace.

        Args:
            name: Name of the object

        Returns:
            The matching record or None if not found
        """
        return super().get(name=name, namespace=self._namespace)
