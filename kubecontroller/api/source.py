"""
List/watch access to the upstream API server, one resource type at a time.

The informers only depend on the ResourceSource interface; the Kubernetes
implementation translates client errors into the watch error taxonomy so
the watcher can choose between relisting, reconnecting and stopping.
"""

import functools
import threading
from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple

import urllib3
from kubernetes.client.rest import ApiException
from kubernetes.watch import watch

from kubecontroller.constants import constants
from kubecontroller.errors import (
    ConnectivityError,
    ResourceVersionExpiredError,
    TransientWatchError,
    WatchError,
)
from kubecontroller.utils.logger import logger


class ListResult(NamedTuple):
    items: List[Any]
    resource_version: str


class WatchEvent(NamedTuple):
    event_type: str
    object: Any
    resource_version: str


class ResourceSource:
    """
    ResourceSource is the black-box resource-watch service consumed by informers.
    """

    def list(
        self,
        resource_type: str,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
        **options,
    ) -> ListResult:
        """
        List all objects of a resource type.

        Args:
            resource_type: The resource type to list
            limit: Optional maximum number of items to return
            timeout: Optional request timeout in seconds
            **options: Selectors passed through to the server

        Returns:
            The items and the resource version of the list

        Raises:
            ResourceVersionExpiredError, TransientWatchError
        """
        raise NotImplementedError

    def watch(
        self,
        resource_type: str,
        resource_version: str,
        timeout_seconds: Optional[int] = None,
        **options,
    ) -> Iterator[WatchEvent]:
        """
        Watch a resource type starting after the given resource version.

        The iterator ends when the server closes the stream cleanly.

        Raises:
            ResourceVersionExpiredError: If resource_version is too old
            TransientWatchError: On network or other server errors
        """
        raise NotImplementedError

    def stop(self, resource_type: Optional[str] = None) -> None:
        """Abort open watch streams, for one resource type or for all of them."""
        pass


def _translate_api_exception(e: ApiException, action: str, resource_type: str) -> WatchError:
    if e.status == constants.HTTP_GONE:
        return ResourceVersionExpiredError(
            f"Resource version expired while trying to {action} {resource_type}: {e.reason}"
        )
    return TransientWatchError(
        f"Exception when trying to {action} {resource_type}: {e.status} {e.reason}"
    )


class _OpenWatch:
    """A running kubernetes watch together with the HTTP response it reads from."""

    def __init__(self, func: Callable):
        self.watch = watch.Watch()
        self.response = None
        self.stopped = False
        self._func = func

    def list_func(self) -> Callable:
        """Wrap the list function so the streaming response can be interrupted later."""
        func = self._func

        @functools.wraps(func)
        def call(*args, **kwargs):
            self.response = func(*args, **kwargs)
            if self.stopped:
                self._interrupt()
            return self.response

        return call

    def stop(self) -> None:
        self.stopped = True
        self.watch.stop()
        self._interrupt()

    def _interrupt(self) -> None:
        response = self.response
        if response is None:
            return
        try:
            # Shutting the socket down unblocks the pending read on the watch
            # thread, which then closes and releases the response itself
            response.shutdown()
        except (ValueError, RuntimeError, OSError):
            response.close()


class KubernetesResourceSource(ResourceSource):
    """ResourceSource backed by kubernetes.client.CoreV1Api and kubernetes.watch."""

    def __init__(self, core_api, namespace: Optional[str] = None):
        """
        Initialize a new KubernetesResourceSource.

        Args:
            core_api: A kubernetes.client.CoreV1Api instance
            namespace: Restrict namespaced resources to this namespace
        """
        self._core_api = core_api
        self._namespace = namespace
        self._lock = threading.Lock()
        self._watches = {}  # type: Dict[str, _OpenWatch]

    def _list_call(self, resource_type: str) -> Tuple[Callable, tuple]:
        """Pick the CoreV1Api list function and positional args for a resource type."""
        if resource_type == constants.RESOURCE_NODE:
            return self._core_api.list_node, ()
        if resource_type == constants.RESOURCE_POD:
            if self._namespace:
                return self._core_api.list_namespaced_pod, (self._namespace,)
            return self._core_api.list_pod_for_all_namespaces, ()
        if resource_type == constants.RESOURCE_SERVICE:
            if self._namespace:
                return self._core_api.list_namespaced_service, (self._namespace,)
            return self._core_api.list_service_for_all_namespaces, ()
        raise ValueError(f"Unsupported resource type: {resource_type}")

    def list(
        self,
        resource_type: str,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
        **options,
    ) -> ListResult:
        list_options = dict(options)
        if limit is not None:
            list_options["limit"] = limit
        if timeout is not None:
            list_options["_request_timeout"] = timeout

        try:
            func, args = self._list_call(resource_type)
            result = func(*args, **list_options)
        except ApiException as e:
            raise _translate_api_exception(e, "list", resource_type)
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise TransientWatchError(f"Error listing {resource_type}: {e}")

        metadata = getattr(result, "metadata", None)
        return ListResult(
            items=list(getattr(result, "items", None) or []),
            resource_version=getattr(metadata, "resource_version", None) or "",
        )

    def watch(
        self,
        resource_type: str,
        resource_version: str,
        timeout_seconds: Optional[int] = None,
        **options,
    ) -> Iterator[WatchEvent]:
        watch_options = dict(options)
        watch_options["allow_watch_bookmarks"] = True
        if resource_version:
            watch_options["resource_version"] = resource_version
        if timeout_seconds:
            watch_options["timeout_seconds"] = timeout_seconds
            # Socket read timeout a little past the server-side timeout so a
            # silently dropped connection cannot stall the watch thread forever
            watch_options["_request_timeout"] = timeout_seconds + 5

        func, args = self._list_call(resource_type)
        open_watch = _OpenWatch(func)
        with self._lock:
            self._watches[resource_type] = open_watch

        try:
            for event in open_watch.watch.stream(open_watch.list_func(), *args, **watch_options):
                event_type = event.get("type", "")
                raw = event.get("raw_object") or {}
                if event_type == constants.WATCH_EVENT_ERROR:
                    code = raw.get("code") if isinstance(raw, dict) else None
                    if code == constants.HTTP_GONE:
                        raise ResourceVersionExpiredError(
                            f"Watch of {resource_type} expired: {raw.get('message', '')}"
                        )
                    raise TransientWatchError(f"Watch of {resource_type} failed: {raw}")

                metadata = raw.get("metadata", {}) if isinstance(raw, dict) else {}
                yield WatchEvent(
                    event_type=event_type,
                    object=event.get("object"),
                    resource_version=metadata.get("resourceVersion", ""),
                )
        except Exception as e:
            if open_watch.stopped:
                logger.debug(f"Watch of {resource_type} ended after stop: {e}")
                return
            if isinstance(e, ApiException):
                raise _translate_api_exception(e, "watch", resource_type)
            if isinstance(e, (urllib3.exceptions.HTTPError, OSError)):
                raise TransientWatchError(f"Error watching {resource_type}: {e}")
            raise
        finally:
            with self._lock:
                if self._watches.get(resource_type) is open_watch:
                    del self._watches[resource_type]

    def stop(self, resource_type: Optional[str] = None) -> None:
        with self._lock:
            if resource_type is None:
                watches = list(self._watches.values())
            else:
                watches = [w for t, w in self._watches.items() if t == resource_type]
        for open_watch in watches:
            open_watch.stop()


def check_connectivity(source: ResourceSource, timeout: float) -> None:
    """
    Single bounded list call against the node resource.

    Args:
        source: The resource source to check
        timeout: Request timeout in seconds

    Raises:
        ConnectivityError: If the call fails for any reason
    """
    try:
        source.list(constants.RESOURCE_NODE, limit=1, timeout=timeout)
    except WatchError as e:
        raise ConnectivityError(f"Unable to reach the API server: {e}") from e
    logger.info("Connectivity check against the API server succeeded")
