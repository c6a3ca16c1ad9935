"""
V1 interface for core informers.
"""

from kubecontroller.informers.internal_interfaces import SharedInformerFactory


class V1Interface:
    """
    Interface provides access to all the informers in this group version.
    """

    def __init__(self, factory: SharedInformerFactory):
        self._factory = factory

    def nodes(self):
        """
        Get the Node informer.

        Returns:
            NodeInformer
        """
        from kubecontroller.informers.core.v1.node import NodeInformer

        return NodeInformer(self._factory)

    def pods(self):
        """
        Get the Pod informer.

        Returns:
            PodInformer
        """
        from kubecontroller.informers.core.v1.pod import PodInformer

        return PodInformer(self._factory)

    def services(self):
        """
        Get the Service informer.

        Returns:
            ServiceInformer
        """
        from kubecontroller.informers.core.v1.service import ServiceInformer

        return ServiceInformer(self._factory)
