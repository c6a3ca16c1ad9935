"""
Exception hierarchy for the controller.

Only ConnectivityError is fatal to the process; every other error is
recovered from or skipped close to where it is raised.
"""


class ControllerError(Exception):
    """Base class for all controller errors."""


class ConfigError(ControllerError):
    """Raised when a configuration value is missing or invalid."""


class ConnectivityError(ControllerError):
    """Raised when the startup health check cannot reach the API server."""


class WatchError(ControllerError):
    """Base class for errors raised by a resource source while listing or watching."""


class ResourceVersionExpiredError(WatchError):
    """
    The resume token is no longer valid on the server (HTTP 410 Gone).

    The only way forward is a fresh list followed by a new watch.
    """


class TransientWatchError(WatchError):
    """A network or server error after which a reconnect may succeed."""


class EmitError(ControllerError):
    """Raised by an EmitterSink when a derived event could not be accepted."""


class EmitterBackpressureError(EmitError):
    """The outbound buffer stayed full for longer than the send timeout."""


class EmitterClosedError(EmitError):
    """The sink was closed and no longer accepts events."""
