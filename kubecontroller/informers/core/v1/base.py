"""
Shared plumbing for the typed core/v1 informers.
"""

from typing import Any, Dict, Optional

from kubecontroller.api.source import ResourceSource
from kubecontroller.converters import TransformFunc
from kubecontroller.informers.cache import IndexFunc
from kubecontroller.informers.internal_interfaces import SharedInformerFactory
from kubecontroller.informers.shared_informer import SharedIndexInformer


class TypedInformer:
    """
    TypedInformer provides access to a shared informer and lister for one resource type.
    """

    resource_type = ""
    transform = None  # type: Optional[TransformFunc]
    indexers = {}  # type: Dict[str, IndexFunc]

    def __init__(self, factory: SharedInformerFactory):
        """
        Initialize a new typed informer.

        Args:
            factory: The informer engine
        """
        self._factory = factory

    def informer(self) -> SharedIndexInformer:
        """
        Get the shared index informer for this resource.

        Returns:
            A SharedIndexInformer
        """
        return self._factory.informer_for(self.resource_type, self._default_informer)

    def lister(self):
        """Get a lister for this resource."""
        raise NotImplementedError

    def _default_informer(
        self, source: ResourceSource, settings: Dict[str, Any]
    ) -> SharedIndexInformer:
        """
        Create the default informer for this resource type.

        Args:
            source: The resource source to list and watch from
            settings: Engine-wide informer settings

        Returns:
            A SharedIndexInformer for this resource type
        """
        return SharedIndexInformer(
            source,
            self.resource_type,
            transform=self.transform,
            indexers=dict(self.indexers),
            **settings,
        )
