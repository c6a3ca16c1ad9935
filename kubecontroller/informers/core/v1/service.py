"""
Service informer implementation.
"""

from kubecontroller.constants import constants
from kubecontroller.converters import service_to_record
from kubecontroller.informers.core.v1.base import TypedInformer


class ServiceInformer(TypedInformer):
    """
    ServiceInformer provides access to a shared informer and lister for Services.
    """

    resource_type = constants.RESOURCE_SERVICE
    transform = staticmethod(service_to_record)

    def lister(self):
        """
        Get a lister for this resource.

        Returns:
            A ServiceLister
        """
        from kubecontroller.listers.core.v1.service import ServiceLister

        return ServiceLister(self.informer().get_indexer())
