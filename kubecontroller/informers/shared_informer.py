"""
SharedIndexInformer keeps an indexed cache of one resource type in sync and
notifies handlers of every change.
"""

import threading
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from kubecontroller.api.source import ResourceSource
from kubecontroller.constants import constants
from kubecontroller.converters import TransformFunc, transform_for
from kubecontroller.informers.cache import IndexFunc, ResourceCache
from kubecontroller.informers.watcher import ResourceWatcher
from kubecontroller.informers.workqueue import WorkQueue
from kubecontroller.models import ChangeNotification, NotificationKind
from kubecontroller.utils.logger import logger

T = TypeVar("T")


class ResourceEventHandler(Generic[T]):
    """
    ResourceEventHandler can handle notifications for events that happen to a resource.

    All three methods are part of the contract. Subclasses override the ones
    they care about; the defaults deliberately do nothing.
    """

    def on_add(self, obj: T) -> None:
        """
        OnAdd is called when an object is added.

        Args:
            obj: The added object
        """
        pass

    def on_update(self, old_obj: T, new_obj: T) -> None:
        """
        OnUpdate is called when an object is modified.

        Args:
            old_obj: The old object
            new_obj: The new object
        """
        pass

    def on_delete(self, obj: T) -> None:
        """
        OnDelete is called when an object is deleted.

        Args:
            obj: The last known state of the deleted object
        """
        pass


class ResourceEventHandlerFuncs(ResourceEventHandler[T]):
    """Adapts plain callables to the ResourceEventHandler interface."""

    def __init__(
        self,
        add_func: Optional[Callable[[T], None]] = None,
        update_func: Optional[Callable[[T, T], None]] = None,
        delete_func: Optional[Callable[[T], None]] = None,
    ):
        self._add_func = add_func
        self._update_func = update_func
        self._delete_func = delete_func

    def on_add(self, obj: T) -> None:
        if self._add_func is not None:
            self._add_func(obj)

    def on_update(self, old_obj: T, new_obj: T) -> None:
        if self._update_func is not None:
            self._update_func(old_obj, new_obj)

    def on_delete(self, obj: T) -> None:
        if self._delete_func is not None:
            self._delete_func(obj)


# A queued unit of handler work: the notification and the handlers it goes to
_WorkItem = Tuple[ChangeNotification, Tuple[ResourceEventHandler, ...]]


class SharedIndexInformer:
    """
    SharedIndexInformer owns one ResourceWatcher, one ResourceCache and one
    handler WorkQueue for a single resource type.

    Notifications are applied to the cache on the watch thread and only then
    queued for the handlers, so a handler always observes a cache that
    already contains the change it is being told about. Handlers run on the
    work queue's threads and never block the watch connection.
    """

    def __init__(
        self,
        source: ResourceSource,
        resource_type: str,
        transform: Optional[TransformFunc] = None,
        workers: int = constants.DEFAULT_WORKERS,
        queue_size: int = constants.DEFAULT_QUEUE_SIZE,
        watch_timeout: int = constants.DEFAULT_WATCH_TIMEOUT_SECONDS,
        backoff: float = constants.DEFAULT_RECONNECT_BACKOFF_SECONDS,
        backoff_max: float = constants.DEFAULT_RECONNECT_BACKOFF_MAX_SECONDS,
        max_reconnect_attempts: int = constants.DEFAULT_MAX_RECONNECT_ATTEMPTS,
        indexers: Optional[Dict[str, IndexFunc]] = None,
    ):
        """
        Initialize a new SharedIndexInformer.

        Args:
            source: Where to list and watch from
            resource_type: Type of resource this informer handles
            transform: Converts API objects to ResourceRecords
            workers: Number of handler worker threads
            queue_size: Capacity of each handler worker's queue
            watch_timeout: Server-side timeout of each watch request in seconds
            backoff: Initial reconnect delay in seconds
            backoff_max: Maximum reconnect delay in seconds
            max_reconnect_attempts: Transient failures tolerated before a relist
            indexers: Extra cache indexers
        """
        self._source = source
        self._resource_type = resource_type
        self._transform = transform or transform_for(resource_type)
        self._watcher_settings = dict(
            watch_timeout=watch_timeout,
            backoff=backoff,
            backoff_max=backoff_max,
            max_reconnect_attempts=max_reconnect_attempts,
        )
        self._cache = ResourceCache(resource_type, indexers)
        self._queue = WorkQueue(
            f"{resource_type}-handlers",
            self._process,
            workers=workers,
            maxsize=queue_size,
        )
        self._watcher = None  # type: Optional[ResourceWatcher]
        self._event_handlers = []  # type: List[ResourceEventHandler]
        self._dispatch_lock = threading.RLock()
        self._started = False
        self._stopped = False
        self._last_sync_resource_version = ""

    @property
    def resource_type(self) -> str:
        return self._resource_type

    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        """
        Add an event handler to the shared informer.

        A handler added after the informer has started first receives an
        on_add for every object already in the cache.

        Args:
            handler: An event handler for resource events
        """
        if self._stopped:
            logger.warning("Informer has stopped, ignoring event handler addition")
            return

        with self._dispatch_lock:
            self._event_handlers.append(handler)
            if self._started:
                existing = self._cache.list()
                logger.debug(
                    f"Replaying {len(existing)} {self._resource_type} objects to new handler"
                )
                for record in existing:
                    self._enqueue(ChangeNotification.added(record), (handler,))

    def get_indexer(self) -> ResourceCache:
        """
        Get the indexer for this informer.

        Returns:
            The informer's ResourceCache
        """
        return self._cache

    def add_indexers(self, indexers: Dict[str, IndexFunc]) -> None:
        """
        Add indexers to this informer.

        Args:
            indexers: Dictionary mapping names to indexer functions
        """
        self._cache.add_indexers(indexers)

    def has_synced(self) -> bool:
        """
        Check if this informer has completed an initial full synchronization.

        Returns:
            True if the informer has synced
        """
        return self._cache.has_synced()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        return self._cache.wait_for_sync(timeout)

    def last_sync_resource_version(self) -> str:
        """
        Get the resource version of the last full list.

        Returns:
            Resource version string
        """
        return self._last_sync_resource_version

    def run(self, resume_token: str = "") -> None:
        """
        Start the handler workers and the watch thread. Returns immediately.

        Args:
            resume_token: Resource version to resume from, or "" to list first
        """
        if self._started:
            logger.warning("Informer already started, ignoring run call")
            return
        if self._stopped:
            logger.warning("Informer has stopped and cannot be restarted")
            return

        self._started = True
        self._queue.start()
        self._watcher = ResourceWatcher(
            self._source, self._resource_type, self._transform, **self._watcher_settings
        )
        self._watcher.start(self._handle_notification, resume_token)
        logger.info(f"Informer for {self._resource_type} started")

    def close(self) -> None:
        """Refuse further notifications and handler work without waiting for anything."""
        self._stopped = True
        self._queue.close()

    def stop(self, drain: bool = True, timeout: Optional[float] = None) -> bool:
        """
        Stop the informer. Safe to call more than once.

        New notifications are refused first, then the watch is closed, then
        queued handler work is either finished (drain=True) or discarded.

        Args:
            drain: Whether to run handler work that is already queued
            timeout: Seconds to wait for each of the watch thread and the workers

        Returns:
            True if every thread exited within the timeout
        """
        self.close()
        watcher_stopped = True
        if self._watcher is not None:
            watcher_stopped = self._watcher.stop(timeout)
        queue_stopped = self._queue.shutdown(drain=drain, timeout=timeout)
        logger.info(f"Informer for {self._resource_type} stopped (drain={drain})")
        return watcher_stopped and queue_stopped

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until all queued handler work has run."""
        return self._queue.wait_idle(timeout)

    def _handle_notification(self, notification: ChangeNotification) -> None:
        """Apply a notification to the cache and queue it for handlers. Runs on the watch thread."""
        with self._dispatch_lock:
            if self._stopped:
                return
            handlers = tuple(self._event_handlers)

            if notification.kind == NotificationKind.RESYNCED:
                snapshot = notification.snapshot
                diff = self._cache.replace(list(snapshot.records), snapshot.resource_version)
                self._last_sync_resource_version = snapshot.resource_version
                if not handlers:
                    return
                for record in diff.added:
                    self._enqueue(ChangeNotification.added(record, snapshot.resource_version), handlers)
                for old, new in diff.modified:
                    self._enqueue(
                        ChangeNotification.modified(new, snapshot.resource_version, old_record=old),
                        handlers,
                    )
                for old in diff.deleted:
                    self._enqueue(
                        ChangeNotification(
                            NotificationKind.DELETED,
                            self._resource_type,
                            old,
                            snapshot.resource_version,
                            old_record=old,
                        ),
                        handlers,
                    )
                return

            effective = self._cache.apply(notification)
            if notification.kind == NotificationKind.SYNC_ERROR:
                return
            if effective is None or not handlers:
                return
            self._enqueue(effective, handlers)

    def _enqueue(
        self, notification: ChangeNotification, handlers: Tuple[ResourceEventHandler, ...]
    ) -> None:
        identity = notification.identity
        if not self._queue.put(identity, (notification, handlers)):
            logger.debug(
                f"Dropped {notification.kind.value} for {self._resource_type} {identity}: queue shutting down"
            )

    def _process(self, item: _WorkItem) -> None:
        """Invoke handlers for one notification in registration order. Runs on a worker thread."""
        notification, handlers = item
        for handler in handlers:
            try:
                _dispatch(handler, notification)
            except Exception as e:
                logger.exception(
                    f"Handler {type(handler).__name__} failed on {notification.kind.value} "
                    f"for {self._resource_type} {notification.identity}: {e}"
                )


def _dispatch(handler: ResourceEventHandler, notification: ChangeNotification) -> None:
    kind = notification.kind
    if kind == NotificationKind.ADDED:
        handler.on_add(notification.record)
    elif kind == NotificationKind.MODIFIED:
        old = notification.old_record
        if old is None:
            handler.on_add(notification.record)
        else:
            handler.on_update(old, notification.record)
    elif kind == NotificationKind.DELETED:
        handler.on_delete(notification.old_record or notification.record)
