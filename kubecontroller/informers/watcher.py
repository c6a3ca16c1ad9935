"""
ResourceWatcher keeps a list+watch stream open for one resource type.
"""

import threading
from typing import Callable, Iterator, Optional

from kubecontroller.api.source import ResourceSource, WatchEvent
from kubecontroller.constants import constants
from kubecontroller.converters import TransformFunc
from kubecontroller.errors import ResourceVersionExpiredError, TransientWatchError, WatchError
from kubecontroller.models import ChangeNotification
from kubecontroller.utils.logger import logger

_EVENT_CONSTRUCTORS = {
    constants.WATCH_EVENT_ADDED: ChangeNotification.added,
    constants.WATCH_EVENT_MODIFIED: ChangeNotification.modified,
    constants.WATCH_EVENT_DELETED: ChangeNotification.deleted,
}


class ResourceWatcher:
    """
    ResourceWatcher turns list and watch calls against a ResourceSource into
    an ordered stream of ChangeNotifications for one resource type.

    Recovery, from cheapest to most expensive:

    - the server closes the stream cleanly: reconnect with the current
      resume token, nothing is emitted;
    - a transient error: wait with exponential back-off and reconnect with
      the current resume token;
    - the resume token expired, or transient errors keep happening: emit
      SyncError and start over with a full list (relist-rewatch).

    Errors never leave the watcher.
    """

    def __init__(
        self,
        source: ResourceSource,
        resource_type: str,
        transform: TransformFunc,
        watch_timeout: int = constants.DEFAULT_WATCH_TIMEOUT_SECONDS,
        backoff: float = constants.DEFAULT_RECONNECT_BACKOFF_SECONDS,
        backoff_max: float = constants.DEFAULT_RECONNECT_BACKOFF_MAX_SECONDS,
        max_reconnect_attempts: int = constants.DEFAULT_MAX_RECONNECT_ATTEMPTS,
    ):
        """
        Initialize a new ResourceWatcher.

        Args:
            source: Where to list and watch from
            resource_type: The resource type to watch
            transform: Converts API objects into ResourceRecords
            watch_timeout: Server-side timeout of each watch request in seconds
            backoff: Initial delay before reconnecting after an error
            backoff_max: Upper bound for the reconnect delay
            max_reconnect_attempts: Consecutive transient failures tolerated
                before falling back to a relist
        """
        self._source = source
        self._resource_type = resource_type
        self._transform = transform
        self._watch_timeout = watch_timeout
        self._backoff = backoff
        self._backoff_max = backoff_max
        self._max_reconnect_attempts = max_reconnect_attempts
        self._stop_event = threading.Event()
        self._thread = None  # type: Optional[threading.Thread]
        self._resume_token = ""

    @property
    def resource_type(self) -> str:
        return self._resource_type

    @property
    def resume_token(self) -> str:
        """Resource version the next watch request would resume from."""
        return self._resume_token

    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    def _delay(self, failures: int) -> float:
        return min(self._backoff * (2 ** max(failures - 1, 0)), self._backoff_max)

    def _wait(self, failures: int) -> bool:
        """Sleep for the back-off delay; returns True if stop was requested meanwhile."""
        return self._stop_event.wait(self._delay(failures))

    def _to_notification(self, event: WatchEvent) -> Optional[ChangeNotification]:
        constructor = _EVENT_CONSTRUCTORS.get(event.event_type)
        if constructor is None:
            logger.warning(
                f"Ignoring unknown watch event type {event.event_type!r} for {self._resource_type}"
            )
            return None
        record = self._transform(event.object)
        return constructor(record, event.resource_version or record.resource_version)

    def stream(self, resume_token: str = "") -> Iterator[ChangeNotification]:
        """
        Generate change notifications until stop() is called.

        Args:
            resume_token: Resource version to resume watching from; an empty
                token starts with a full list

        Yields:
            ChangeNotifications in the order the server delivered them. A full
            list is yielded as a single Resynced notification.
        """
        self._resume_token = resume_token
        failures = 0

        while not self._stop_event.is_set():
            if not self._resume_token:
                try:
                    result = self._source.list(self._resource_type)
                except WatchError as e:
                    failures += 1
                    logger.warning(
                        f"Listing {self._resource_type} failed (attempt {failures}), "
                        f"retrying in {self._delay(failures):.1f}s: {e}"
                    )
                    if self._wait(failures):
                        break
                    continue

                records = []
                for item in result.items:
                    try:
                        records.append(self._transform(item))
                    except Exception as e:
                        logger.exception(f"Skipping {self._resource_type} item that could not be converted: {e}")
                failures = 0
                self._resume_token = result.resource_version
                logger.info(
                    f"Listed {len(records)} {self._resource_type} objects at version {result.resource_version}"
                )
                if self._stop_event.is_set():
                    break
                yield ChangeNotification.resynced(
                    self._resource_type, records, result.resource_version
                )

            try:
                for event in self._source.watch(
                    self._resource_type,
                    self._resume_token,
                    timeout_seconds=self._watch_timeout,
                ):
                    if self._stop_event.is_set():
                        break
                    failures = 0
                    if event.event_type == constants.WATCH_EVENT_BOOKMARK:
                        self._resume_token = event.resource_version or self._resume_token
                        continue
                    try:
                        notification = self._to_notification(event)
                    except Exception as e:
                        logger.exception(f"Skipping {self._resource_type} watch event that could not be converted: {e}")
                        continue
                    if notification is None:
                        continue
                    self._resume_token = notification.resume_token or self._resume_token
                    yield notification
                else:
                    logger.debug(
                        f"Watch of {self._resource_type} closed by server, resuming from {self._resume_token}"
                    )
            except ResourceVersionExpiredError as e:
                logger.info(f"Resume token for {self._resource_type} expired, relisting: {e}")
                self._resume_token = ""
                failures = 0
                if not self._stop_event.is_set():
                    yield ChangeNotification.sync_error(self._resource_type, str(e))
            except TransientWatchError as e:
                if self._stop_event.is_set():
                    break
                failures += 1
                if failures > self._max_reconnect_attempts:
                    logger.warning(
                        f"Watch of {self._resource_type} failed {failures} times in a row, relisting: {e}"
                    )
                    self._resume_token = ""
                    yield ChangeNotification.sync_error(self._resource_type, str(e))
                    if self._wait(failures):
                        break
                    failures = 0
                    continue
                logger.warning(
                    f"Watch of {self._resource_type} failed (attempt {failures}), "
                    f"reconnecting in {self._delay(failures):.1f}s: {e}"
                )
                if self._wait(failures):
                    break

    def start(
        self, deliver: Callable[[ChangeNotification], None], resume_token: str = ""
    ) -> None:
        """
        Run the stream on a dedicated daemon thread.

        Args:
            deliver: Called on the watch thread for every notification
            resume_token: Resource version to resume from, or "" to list first
        """
        if self._thread is not None:
            logger.warning(f"Watcher for {self._resource_type} already started, ignoring start call")
            return

        def watch_thread():
            notifications = self.stream(resume_token)
            try:
                for notification in notifications:
                    if self._stop_event.is_set():
                        break
                    try:
                        deliver(notification)
                    except Exception as e:
                        logger.exception(
                            f"Error delivering {notification.kind.value} for {self._resource_type}: {e}"
                        )
            finally:
                notifications.close()
                logger.info(f"Watcher for {self._resource_type} stopped")

        self._thread = threading.Thread(
            target=watch_thread, name=f"watch-{self._resource_type}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop watching. Safe to call more than once.

        Args:
            timeout: Maximum seconds to wait for the watch thread

        Returns:
            True if the watch thread has exited
        """
        self._stop_event.set()
        self._source.stop(self._resource_type)
        if self._thread is None or self._thread is threading.current_thread():
            return True
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning(
                f"Watch thread for {self._resource_type} did not exit within {timeout}s, abandoning it"
            )
            return False
        return True
