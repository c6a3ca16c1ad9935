"""
Cache implementations for the informer framework.
"""

import threading
from typing import Callable, Dict, Generic, List, NamedTuple, Optional, Set, Tuple, TypeVar

from kubecontroller.constants import constants
from kubecontroller.models import (
    ChangeNotification,
    NotificationKind,
    ResourceIdentity,
    ResourceRecord,
    compare_resource_versions,
)
from kubecontroller.utils.logger import logger

T = TypeVar("T")
IndexFunc = Callable[[T], List[str]]


def namespace_index_func(record: ResourceRecord) -> List[str]:
    """Index records by namespace; cluster-scoped records index under ""."""
    return [record.namespace]


class Store(Generic[T]):
    """
    Store is a generic object storage interface.
    """

    def get(self, identity: ResourceIdentity) -> Optional[T]:
        """Get an object by identity from the store."""
        pass

    def get_by_key(self, key: str) -> Optional[T]:
        """Get an object by "namespace/name" key from the store."""
        pass

    def list(self) -> List[T]:
        """List all objects in the store."""
        pass

    def list_keys(self) -> List[str]:
        """List all keys in the store."""
        pass

    def replace(self, items: List[T], resource_version: str):
        """Replace the store contents with the given list."""
        pass


class Indexer(Store[T]):
    """
    Indexer extends Store with multiple indices.
    """

    def index_keys(self, index_name: str, index_value: str) -> List[str]:
        """
        Return the set of keys that match on the named index with the given value.

        Args:
            index_name: Name of the index to check
            index_value: Value to check

        Returns:
            List of keys that match
        """
        pass

    def by_index(self, index_name: str, index_value: str) -> List[T]:
        """
        Return the objects that match on the named index with the given value.

        Args:
            index_name: Name of the index to check
            index_value: Value to check

        Returns:
            List of matching objects
        """
        pass

    def list_index_func_values(self, index_name: str) -> List[str]:
        """
        List all the values available in the named index.

        Args:
            index_name: Name of the index

        Returns:
            List of values in the index
        """
        pass

    def get_indexers(self) -> Dict[str, IndexFunc]:
        """
        Return the indexers registered with this store.

        Returns:
            Dictionary mapping names to index functions
        """
        pass

    def add_indexers(self, new_indexers: Dict[str, IndexFunc]) -> None:
        """
        Add indexers to the indexer.

        Args:
            new_indexers: Dictionary mapping names to index functions
        """
        pass


def _build_indices(
    items: Dict[str, T], indexers: Dict[str, IndexFunc]
) -> Dict[str, Dict[str, Set[str]]]:
    indices = {name: {} for name in indexers}  # type: Dict[str, Dict[str, Set[str]]]
    for key, obj in items.items():
        for name, func in indexers.items():
            for value in func(obj):
                indices[name].setdefault(value, set()).add(key)
    return indices


class ThreadSafeMap(Generic[T]):
    """
    ThreadSafeMap is a lock-protected map with secondary indices.

    Every method holds the lock for a bounded critical section; reads return
    copies so callers never share mutable state with the writer.
    """

    def __init__(self, indexers: Optional[Dict[str, IndexFunc]] = None):
        self._items = {}  # type: Dict[str, T]
        self._lock = threading.RLock()
        self._resource_version = ""
        self._indexers = dict(indexers or {})  # type: Dict[str, IndexFunc]
        self._indices = {name: {} for name in self._indexers}  # type: Dict[str, Dict[str, Set[str]]]

    def _index_add(self, key: str, obj: T) -> None:
        for name, func in self._indexers.items():
            for value in func(obj):
                self._indices[name].setdefault(value, set()).add(key)

    def _index_remove(self, key: str, obj: T) -> None:
        for name, func in self._indexers.items():
            index = self._indices[name]
            for value in func(obj):
                keys = index.get(value)
                if keys is None:
                    continue
                keys.discard(key)
                if not keys:
                    del index[value]

    def put(self, key: str, obj: T) -> Optional[T]:
        """
        Add or replace the object stored under key.

        Args:
            key: The key of the object
            obj: The object to store

        Returns:
            The object previously stored under key, if any
        """
        with self._lock:
            old = self._items.get(key)
            if old is not None:
                self._index_remove(key, old)
            self._items[key] = obj
            self._index_add(key, obj)
            return old

    def put_if(
        self, key: str, obj: T, should_replace: Callable[[T, T], bool]
    ) -> Tuple[bool, Optional[T]]:
        """
        Store obj under key unless an existing object wins against it.

        Args:
            key: The key of the object
            obj: The candidate object
            should_replace: Called as should_replace(existing, obj) when key is present

        Returns:
            Whether obj was stored, and the object that was under key before
        """
        with self._lock:
            old = self._items.get(key)
            if old is not None and not should_replace(old, obj):
                return False, old
            self.put(key, obj)
            return True, old

    def delete(self, key: str) -> Optional[T]:
        """
        Delete removes the object from the store by key.

        Args:
            key: The key of the object

        Returns:
            The removed object, or None if nothing was stored under key
        """
        with self._lock:
            old = self._items.pop(key, None)
            if old is not None:
                self._index_remove(key, old)
            return old

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            return self._items.get(key)

    def list(self) -> Dict[str, T]:
        """
        List returns a copy of the objects in the store.

        Returns:
            Dictionary of all objects
        """
        with self._lock:
            return dict(self._items)

    def list_keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())

    def replace(self, items: Dict[str, T], resource_version: str) -> Dict[str, T]:
        """
        Replace will delete the contents of the store, using instead the
        given map. The new map and its indices are built before the lock is
        taken, so readers see either the old or the new contents.

        Args:
            items: Map of items to use instead
            resource_version: Resource version to set

        Returns:
            The contents that were replaced
        """
        new_items = dict(items)
        with self._lock:
            indexers = dict(self._indexers)
        new_indices = _build_indices(new_items, indexers)
        with self._lock:
            if indexers != self._indexers:
                # An indexer was added while we were building; rebuild under the lock
                new_indices = _build_indices(new_items, self._indexers)
            old_items = self._items
            self._items = new_items
            self._indices = new_indices
            self._resource_version = resource_version
            return old_items

    def resource_version(self) -> str:
        with self._lock:
            return self._resource_version

    def set_resource_version(self, resource_version: str) -> None:
        with self._lock:
            self._resource_version = resource_version

    def index_keys(self, index_name: str, index_value: str) -> List[str]:
        with self._lock:
            if index_name not in self._indexers:
                raise KeyError(f"Index {index_name} does not exist")
            return sorted(self._indices[index_name].get(index_value, ()))

    def by_index(self, index_name: str, index_value: str) -> List[T]:
        with self._lock:
            if index_name not in self._indexers:
                raise KeyError(f"Index {index_name} does not exist")
            keys = self._indices[index_name].get(index_value, ())
            return [self._items[k] for k in sorted(keys)]

    def list_index_func_values(self, index_name: str) -> List[str]:
        with self._lock:
            return list(self._indices.get(index_name, {}).keys())

    def get_indexers(self) -> Dict[str, IndexFunc]:
        with self._lock:
            return dict(self._indexers)

    def add_indexers(self, new_indexers: Dict[str, IndexFunc]) -> None:
        with self._lock:
            overlap = set(new_indexers) & set(self._indexers)
            if overlap:
                raise ValueError(f"Indexer conflict: {', '.join(sorted(overlap))}")
            self._indexers.update(new_indexers)
            for name in new_indexers:
                self._indices[name] = {}
            for key, obj in self._items.items():
                for name, func in new_indexers.items():
                    for value in func(obj):
                        self._indices[name].setdefault(value, set()).add(key)


def _is_newer(existing: ResourceRecord, incoming: ResourceRecord) -> bool:
    return compare_resource_versions(existing.resource_version, incoming.resource_version) < 0


class ResyncDiff(NamedTuple):
    """Difference between the cache contents before and after a relist."""

    added: List[ResourceRecord]
    modified: List[Tuple[ResourceRecord, ResourceRecord]]
    deleted: List[ResourceRecord]


class ResourceCache(Indexer[ResourceRecord]):
    """
    ResourceCache holds the latest known ResourceRecord per identity for one
    resource type.

    Writes come from a single watch thread; reads may come from any thread.
    Added/Modified notifications only replace a record when they carry a
    strictly higher resource version, so redelivered or reordered events
    after a reconnect are harmless.
    """

    def __init__(self, resource_type: str, indexers: Optional[Dict[str, IndexFunc]] = None):
        all_indexers = {constants.NAMESPACE_INDEX: namespace_index_func}
        all_indexers.update(indexers or {})
        self._resource_type = resource_type
        self._store = ThreadSafeMap(all_indexers)  # type: ThreadSafeMap[ResourceRecord]
        self._ready_condition = threading.Condition(threading.Lock())
        self._ready = False
        self._has_synced = False

    @property
    def resource_type(self) -> str:
        return self._resource_type

    def apply(self, notification: ChangeNotification) -> Optional[ChangeNotification]:
        """
        Apply a change notification to the cache.

        Args:
            notification: The notification to apply

        Returns:
            The notification as it should be dispatched to handlers, with
            old_record filled in and the kind corrected (a Modified for an
            unknown identity becomes Added), or None when the notification
            had no effect on the cache contents.
        """
        kind = notification.kind
        if kind == NotificationKind.RESYNCED:
            snapshot = notification.snapshot
            self.replace(list(snapshot.records), snapshot.resource_version)
            return notification
        if kind == NotificationKind.SYNC_ERROR:
            self.mark_not_ready(notification.reason)
            return notification

        record = notification.record
        if record is None:
            logger.warning(f"Ignoring {kind.value} notification for {self._resource_type} without a record")
            return None

        if kind == NotificationKind.DELETED:
            old = self._store.delete(record.key)
            if notification.resume_token:
                self._store.set_resource_version(notification.resume_token)
            if old is None:
                return None
            return ChangeNotification(
                NotificationKind.DELETED,
                self._resource_type,
                record,
                notification.resume_token,
                old_record=old,
            )

        stored, current = self._store.put_if(record.key, record, _is_newer)
        if notification.resume_token:
            self._store.set_resource_version(notification.resume_token)
        if not stored:
            logger.debug(
                f"Ignoring stale {kind.value} for {self._resource_type} {record.key}: "
                f"stored {current.resource_version}, incoming {record.resource_version}"
            )
            return None

        if current is None:
            return ChangeNotification.added(record, notification.resume_token)
        return ChangeNotification.modified(record, notification.resume_token, old_record=current)

    def replace(self, items: List[ResourceRecord], resource_version: str) -> ResyncDiff:
        """
        Atomically swap the cache contents for a full list and mark it ready.

        Args:
            items: Every record returned by the list call
            resource_version: Resource version of the list

        Returns:
            What changed relative to the previous contents
        """
        new_items = {}  # type: Dict[str, ResourceRecord]
        for record in items:
            existing = new_items.get(record.key)
            if existing is None or compare_resource_versions(
                existing.resource_version, record.resource_version
            ) < 0:
                new_items[record.key] = record

        old_items = self._store.replace(new_items, resource_version)

        added, modified, deleted = [], [], []
        for key, record in new_items.items():
            old = old_items.get(key)
            if old is None:
                added.append(record)
            elif old.resource_version != record.resource_version:
                modified.append((old, record))
        for key, old in old_items.items():
            if key not in new_items:
                deleted.append(old)

        with self._ready_condition:
            self._ready = True
            self._has_synced = True
            self._ready_condition.notify_all()
        logger.debug(
            f"Replaced {self._resource_type} cache at version {resource_version}: "
            f"{len(new_items)} items ({len(added)} added, {len(modified)} modified, {len(deleted)} deleted)"
        )
        return ResyncDiff(added, modified, deleted)

    def mark_not_ready(self, reason: str = "") -> None:
        """
        Mark the cache as awaiting a full resync.

        The last known contents stay readable until replace() swaps in the
        next complete list.
        """
        with self._ready_condition:
            self._ready = False
        logger.info(
            f"{self._resource_type} cache awaiting resync"
            + (f": {reason}" if reason else "")
        )

    def is_ready(self) -> bool:
        with self._ready_condition:
            return self._ready

    def has_synced(self) -> bool:
        """True once the first full list has been stored, even if a later resync is pending."""
        with self._ready_condition:
            return self._has_synced

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the first full list has been stored.

        Args:
            timeout: Maximum seconds to wait, or None to wait forever

        Returns:
            True if the cache has synced
        """
        with self._ready_condition:
            return self._ready_condition.wait_for(lambda: self._has_synced, timeout)

    def resource_version(self) -> str:
        return self._store.resource_version()

    def get(self, identity: ResourceIdentity) -> Optional[ResourceRecord]:
        return self._store.get(identity.key)

    def get_by_key(self, key: str) -> Optional[ResourceRecord]:
        return self._store.get(key)

    def list(self) -> List[ResourceRecord]:
        return list(self._store.list().values())

    def list_keys(self) -> List[str]:
        return self._store.list_keys()

    def __len__(self) -> int:
        return len(self._store.list_keys())

    def index_keys(self, index_name: str, index_value: str) -> List[str]:
        return self._store.index_keys(index_name, index_value)

    def by_index(self, index_name: str, index_value: str) -> List[ResourceRecord]:
        return self._store.by_index(index_name, index_value)

    def list_index_func_values(self, index_name: str) -> List[str]:
        return self._store.list_index_func_values(index_name)

    def get_indexers(self) -> Dict[str, IndexFunc]:
        return self._store.get_indexers()

    def add_indexers(self, new_indexers: Dict[str, IndexFunc]) -> None:
        self._store.add_indexers(new_indexers)
