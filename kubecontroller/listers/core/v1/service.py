"""
Service lister implementation.
"""

from typing import Optional

from kubecontroller.listers.base_lister import BaseLister, NamespaceLister
from kubecontroller.models import ResourceRecord


class ServiceLister(BaseLister):
    """
    ServiceLister is able to list and get Service records.
    """

    def services(self, namespace: str) -> "NamespacedServiceLister":
        """
        Return a lister for the given namespace.

        Args:
            namespace: The namespace to list in

        Returns:
            A namespaced lister
        """
        return NamespacedServiceLister(self._indexer, namespace)

    def get(self, name: str, namespace: str) -> Optional[ResourceRecord]:
        """
        Get a specific Service by name and namespace.

        Args:
            name: Name of the Service
            namespace: Namespace of the Service

        Returns:
            The Service record or None if not found
        """
        return super().get(name, namespace)


class NamespacedServiceLister(NamespaceLister):
    """
    NamespacedServiceLister is able to list and get Service records in a specific namespace.
    """
