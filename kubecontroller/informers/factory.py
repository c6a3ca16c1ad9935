"""
InformerEngine provides shared informers for every registered resource type.
"""

import threading
import time
from typing import Any, Dict, List, Optional

from tabulate import tabulate

from kubecontroller.api.source import ResourceSource
from kubecontroller.config import InformerConfig
from kubecontroller.constants import constants
from kubecontroller.informers.cache import ResourceCache
from kubecontroller.informers.internal_interfaces import NewInformerFunc
from kubecontroller.informers.internal_interfaces import (
    SharedInformerFactory as InformerFactory,
)
from kubecontroller.informers.shared_informer import (
    ResourceEventHandler,
    SharedIndexInformer,
)
from kubecontroller.utils.logger import logger

# How often a blocked start_all() re-checks whether the engine is stopping
_SYNC_POLL_SECONDS = 0.1


def _default_new_informer(resource_type: str) -> NewInformerFunc:
    def new_informer(source: ResourceSource, settings: Dict[str, Any]) -> SharedIndexInformer:
        return SharedIndexInformer(source, resource_type, **settings)

    return new_informer


class InformerEngine(InformerFactory):
    """
    InformerEngine runs one SharedIndexInformer per registered resource type.

    It is typically used like this:

        engine = InformerEngine(client.source)
        node_informer = engine.core().v1().nodes()
        engine.register("pod")
        node_informer.informer().add_event_handler(my_handler)

        # Start all informers and wait for their initial list
        engine.start_all()

        # Use the listers...

        # When done
        engine.stop_all(drain=True)
    """

    def __init__(
        self,
        source: ResourceSource,
        workers: int = constants.DEFAULT_WORKERS,
        queue_size: int = constants.DEFAULT_QUEUE_SIZE,
        watch_timeout: int = constants.DEFAULT_WATCH_TIMEOUT_SECONDS,
        backoff: float = constants.DEFAULT_RECONNECT_BACKOFF_SECONDS,
        backoff_max: float = constants.DEFAULT_RECONNECT_BACKOFF_MAX_SECONDS,
        max_reconnect_attempts: int = constants.DEFAULT_MAX_RECONNECT_ATTEMPTS,
    ):
        """
        Initialize a new InformerEngine.

        Args:
            source: The resource source every informer lists and watches from
            workers: Handler worker threads per resource type
            queue_size: Handler queue capacity per worker
            watch_timeout: Server-side timeout of each watch request in seconds
            backoff: Initial reconnect delay in seconds
            backoff_max: Maximum reconnect delay in seconds
            max_reconnect_attempts: Transient failures tolerated before a relist
        """
        self._source = source
        self._settings = dict(
            workers=workers,
            queue_size=queue_size,
            watch_timeout=watch_timeout,
            backoff=backoff,
            backoff_max=backoff_max,
            max_reconnect_attempts=max_reconnect_attempts,
        )
        self._lock = threading.RLock()
        self._informers = {}  # type: Dict[str, SharedIndexInformer]
        self._started_informers = {}  # type: Dict[str, bool]
        self._stop_event = threading.Event()
        self._shutting_down = False

    @classmethod
    def from_config(cls, source: ResourceSource, config: InformerConfig) -> "InformerEngine":
        return cls(
            source,
            workers=config.workers,
            queue_size=config.queue_size,
            watch_timeout=config.watch_timeout,
            backoff=config.reconnect_backoff,
            backoff_max=config.reconnect_backoff_max,
            max_reconnect_attempts=config.max_reconnect_attempts,
        )

    def informer_for(
        self, resource_type: str, new_func: Optional[NewInformerFunc] = None
    ) -> SharedIndexInformer:
        """
        Get the SharedIndexInformer for a resource type, creating it on first use.

        Args:
            resource_type: Type of objects the informer should handle
            new_func: Function to create a new informer

        Returns:
            A SharedIndexInformer for the specified type
        """
        with self._lock:
            informer = self._informers.get(resource_type)
            if informer:
                return informer

            if self._shutting_down:
                raise RuntimeError(f"Cannot register {resource_type}: engine is shutting down")

            new_func = new_func or _default_new_informer(resource_type)
            informer = new_func(self._source, dict(self._settings))
            self._informers[resource_type] = informer
            logger.debug(f"Registered informer for {resource_type}")
            return informer

    def register(self, resource_type: str) -> SharedIndexInformer:
        """
        Register a resource type. Core types get their typed informer
        (transform and indexers); anything else gets a generic one.

        Returns:
            The informer for the resource type
        """
        v1 = self.core().v1()
        typed = {
            constants.RESOURCE_NODE: v1.nodes,
            constants.RESOURCE_POD: v1.pods,
            constants.RESOURCE_SERVICE: v1.services,
        }.get(resource_type)
        if typed is not None:
            return typed().informer()
        return self.informer_for(resource_type)

    def add_handler(self, resource_type: str, handler: ResourceEventHandler) -> None:
        """
        Add an event handler for a registered resource type.

        Raises:
            KeyError: If the resource type was never registered
        """
        with self._lock:
            informer = self._informers.get(resource_type)
        if informer is None:
            raise KeyError(f"Resource type {resource_type} is not registered")
        informer.add_event_handler(handler)

    def get_cache(self, resource_type: str) -> ResourceCache:
        """
        Get the read-only cache view of a registered resource type.

        Raises:
            KeyError: If the resource type was never registered
        """
        with self._lock:
            informer = self._informers.get(resource_type)
        if informer is None:
            raise KeyError(f"Resource type {resource_type} is not registered")
        return informer.get_indexer()

    def registered_types(self) -> List[str]:
        with self._lock:
            return list(self._informers.keys())

    def start(self) -> None:
        """
        Start every registered informer that is not running yet. Returns immediately.
        """
        with self._lock:
            if self._shutting_down:
                return

            for resource_type, informer in self._informers.items():
                if not self._started_informers.get(resource_type, False):
                    informer.run()
                    self._started_informers[resource_type] = True

    def wait_for_cache_sync(self, timeout: Optional[float] = None) -> Dict[str, bool]:
        """
        WaitForCacheSync blocks until all started informers' caches were synced,
        the timeout expires or the engine is stopped.

        Args:
            timeout: Maximum seconds to wait in total, or None to wait until synced

        Returns:
            Dictionary mapping resource types to sync status
        """
        informers = {}
        with self._lock:
            for resource_type, informer in self._informers.items():
                if self._started_informers.get(resource_type, False):
                    informers[resource_type] = informer

        deadline = None if timeout is None else time.monotonic() + timeout
        res = {}
        for resource_type, informer in informers.items():
            synced = informer.has_synced()
            while not synced and not self._stop_event.is_set():
                if deadline is None:
                    wait = _SYNC_POLL_SECONDS
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    wait = min(_SYNC_POLL_SECONDS, remaining)
                synced = informer.wait_for_sync(wait)
            res[resource_type] = synced

        return res

    def start_all(self, timeout: Optional[float] = None) -> Dict[str, bool]:
        """
        Start every registered informer and block until each has completed its
        initial full list.

        Args:
            timeout: Maximum seconds to wait for the initial sync

        Returns:
            Dictionary mapping resource types to whether they synced
        """
        self.start()
        result = self.wait_for_cache_sync(timeout)
        logger.info(
            "Informer sync status:\n"
            + tabulate(
                [
                    [
                        resource_type,
                        synced,
                        len(self._informers[resource_type].get_indexer()),
                        self._informers[resource_type].last_sync_resource_version(),
                    ]
                    for resource_type, synced in result.items()
                ],
                headers=["RESOURCE", "SYNCED", "ITEMS", "RESOURCE_VERSION"],
                tablefmt="plain",
            )
        )
        return result

    def stop_all(self, drain: bool = True, timeout: Optional[float] = None) -> bool:
        """
        Stop every informer. Idempotent and safe to call from a shutdown hook.

        Args:
            drain: Finish queued handler work (True) or discard it (False)
            timeout: Maximum seconds to wait per informer for its threads

        Returns:
            True if every informer stopped within the timeout
        """
        with self._lock:
            self._shutting_down = True
            informers = list(self._informers.values())
        self._stop_event.set()

        # Refuse new notifications everywhere before waiting on any informer
        for informer in informers:
            informer.close()
        stopped = True
        for informer in informers:
            stopped = informer.stop(drain=drain, timeout=timeout) and stopped
        return stopped

    def core(self):
        """
        Get the core group of informers.

        Returns:
            CoreInformer interface
        """
        from kubecontroller.informers.core import CoreInformer

        return CoreInformer(self)
