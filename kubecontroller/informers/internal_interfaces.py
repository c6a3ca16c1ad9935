"""
Internal interfaces for the informer engine.
"""

from typing import Any, Dict

from kubecontroller.api.source import ResourceSource


class NewInformerFunc:
    """Function type for creating a new informer."""

    def __call__(self, source: ResourceSource, settings: Dict[str, Any]):
        """
        Takes a ResourceSource and the engine's informer settings to return a SharedIndexInformer.

        Args:
            source: The resource source to list and watch from
            settings: Keyword arguments for SharedIndexInformer (workers, queue_size, ...)

        Returns:
            A SharedIndexInformer
        """
        pass


class SharedInformerFactory:
    """
    SharedInformerFactory is a small interface to allow for adding an informer without an import cycle.
    """

    def informer_for(self, resource_type: str, new_func: NewInformerFunc):
        """
        Get an informer for a specific resource type.

        Args:
            resource_type: The resource type
            new_func: Function to create a new informer

        Returns:
            A SharedIndexInformer for the specified type
        """
        pass
