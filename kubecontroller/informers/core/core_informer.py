"""
Core API group informer implementation.
"""

from kubecontroller.informers.internal_interfaces import SharedInformerFactory


class CoreInformer:
    """
    Provides access to the core API group informers.
    """

    def __init__(self, factory: SharedInformerFactory):
        """
        Initialize a new CoreInformer.

        Args:
            factory: The informer engine
        """
        self._factory = factory

    def v1(self):
        """
        Get the v1 version of the core informers.

        Returns:
            V1Interface
        """
        from kubecontroller.informers.core.v1 import V1Interface

        return V1Interface(self._factory)
