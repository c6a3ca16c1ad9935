"""
Configuration loading from KUBECONTROLLER_* environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from kubecontroller.constants import constants
from kubecontroller.errors import ConfigError

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class KubernetesConfig:
    """How to reach the API server."""

    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    namespace: Optional[str] = None
    health_check_timeout: float = constants.DEFAULT_HEALTH_CHECK_TIMEOUT_SECONDS


@dataclass
class InformerConfig:
    """Watch, cache and handler-queue tuning."""

    workers: int = constants.DEFAULT_WORKERS
    queue_size: int = constants.DEFAULT_QUEUE_SIZE
    watch_timeout: int = constants.DEFAULT_WATCH_TIMEOUT_SECONDS
    reconnect_backoff: float = constants.DEFAULT_RECONNECT_BACKOFF_SECONDS
    reconnect_backoff_max: float = constants.DEFAULT_RECONNECT_BACKOFF_MAX_SECONDS
    max_reconnect_attempts: int = constants.DEFAULT_MAX_RECONNECT_ATTEMPTS
    sync_timeout: float = constants.DEFAULT_SYNC_TIMEOUT_SECONDS
    stop_timeout: float = constants.DEFAULT_STOP_TIMEOUT_SECONDS


@dataclass
class EmitterConfig:
    """Outbound channel configuration."""

    buffer_size: int = constants.DEFAULT_EMITTER_BUFFER
    send_timeout: float = constants.DEFAULT_EMITTER_SEND_TIMEOUT_SECONDS
    webhook_url: str = ""
    webhook_timeout: float = constants.DEFAULT_WEBHOOK_TIMEOUT_SECONDS


@dataclass
class ReconcilerConfig:
    """Node reconciler behaviour."""

    port_mode: str = constants.PORT_MODE_FIRST


@dataclass
class ControllerConfig:
    """Top-level controller configuration."""

    log_level: str = "INFO"
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    informer: InformerConfig = field(default_factory=InformerConfig)
    emitter: EmitterConfig = field(default_factory=EmitterConfig)
    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)


class _EnvReader:
    def __init__(self, environ: Mapping[str, str]):
        self._environ = environ

    def get_str(self, key: str, default: str = "") -> str:
        return self._environ.get(constants.ENV_PREFIX + key, default)

    def optional(self, key: str) -> Optional[str]:
        return self.get_str(key) or None

    def get_int(
        self,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        raw = self.get_str(key, str(default))
        try:
            val = int(raw)
        except ValueError:
            raise ConfigError(f"{constants.ENV_PREFIX}{key} must be an integer, got {raw!r}")
        if min_val is not None:
            val = max(val, min_val)
        if max_val is not None:
            val = min(val, max_val)
        return val

    def get_float(self, key: str, default: float, min_val: Optional[float] = None) -> float:
        raw = self.get_str(key, str(default))
        try:
            val = float(raw)
        except ValueError:
            raise ConfigError(f"{constants.ENV_PREFIX}{key} must be a number, got {raw!r}")
        if min_val is not None:
            val = max(val, min_val)
        return val


def _validate_log_level(value: str) -> str:
    if value.upper() not in _VALID_LOG_LEVELS:
        raise ConfigError(
            f"Invalid log level: {value}. Must be one of {', '.join(_VALID_LOG_LEVELS)}"
        )
    return value.upper()


def _validate_port_mode(value: str) -> str:
    if value.lower() not in constants.PORT_MODES:
        raise ConfigError(
            f"Invalid port mode: {value}. Must be one of {', '.join(constants.PORT_MODES)}"
        )
    return value.lower()


def load_config(environ: Optional[Mapping[str, str]] = None) -> ControllerConfig:
    """
    Load configuration from KUBECONTROLLER_* environment variables.

    Args:
        environ: Mapping to read instead of os.environ

    Returns:
        A populated ControllerConfig

    Raises:
        ConfigError: If a value cannot be parsed or is not allowed
    """
    env = _EnvReader(os.environ if environ is None else environ)
    informer = InformerConfig(
        workers=env.get_int("WORKERS", constants.DEFAULT_WORKERS, min_val=1, max_val=64),
        queue_size=env.get_int("QUEUE_SIZE", constants.DEFAULT_QUEUE_SIZE, min_val=1),
        watch_timeout=env.get_int(
            "WATCH_TIMEOUT", constants.DEFAULT_WATCH_TIMEOUT_SECONDS, min_val=1
        ),
        reconnect_backoff=env.get_float(
            "RECONNECT_BACKOFF", constants.DEFAULT_RECONNECT_BACKOFF_SECONDS, min_val=0.0
        ),
        reconnect_backoff_max=env.get_float(
            "RECONNECT_BACKOFF_MAX",
            constants.DEFAULT_RECONNECT_BACKOFF_MAX_SECONDS,
            min_val=0.0,
        ),
        max_reconnect_attempts=env.get_int(
            "MAX_RECONNECT_ATTEMPTS",
            constants.DEFAULT_MAX_RECONNECT_ATTEMPTS,
            min_val=0,
        ),
        sync_timeout=env.get_float(
            "SYNC_TIMEOUT", constants.DEFAULT_SYNC_TIMEOUT_SECONDS, min_val=0.0
        ),
        stop_timeout=env.get_float(
            "STOP_TIMEOUT", constants.DEFAULT_STOP_TIMEOUT_SECONDS, min_val=0.0
        ),
    )
    if informer.reconnect_backoff_max < informer.reconnect_backoff:
        informer.reconnect_backoff_max = informer.reconnect_backoff

    return ControllerConfig(
        log_level=_validate_log_level(env.get_str("LOG_LEVEL", "INFO")),
        kubernetes=KubernetesConfig(
            kubeconfig=env.optional("KUBECONFIG"),
            context=env.optional("CONTEXT"),
            namespace=env.optional("NAMESPACE"),
            health_check_timeout=env.get_float(
                "HEALTH_CHECK_TIMEOUT",
                constants.DEFAULT_HEALTH_CHECK_TIMEOUT_SECONDS,
                min_val=0.1,
            ),
        ),
        informer=informer,
        emitter=EmitterConfig(
            buffer_size=env.get_int("EMITTER_BUFFER", constants.DEFAULT_EMITTER_BUFFER, min_val=1),
            send_timeout=env.get_float(
                "EMITTER_SEND_TIMEOUT",
                constants.DEFAULT_EMITTER_SEND_TIMEOUT_SECONDS,
                min_val=0.0,
            ),
            webhook_url=env.get_str("EMITTER_WEBHOOK_URL", ""),
            webhook_timeout=env.get_float(
                "EMITTER_WEBHOOK_TIMEOUT",
                constants.DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
                min_val=0.1,
            ),
        ),
        reconciler=ReconcilerConfig(
            port_mode=_validate_port_mode(
                env.get_str("PORT_MODE", constants.PORT_MODE_FIRST)
            ),
        ),
    )
