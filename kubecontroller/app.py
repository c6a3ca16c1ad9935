"""
ControllerApp wires the client, informers, reconciler and emitter together
and owns their lifecycle.
"""

import signal
import threading
from typing import Dict, Optional

from kubernetes.config import ConfigException

from kubecontroller.api.controller_client import ControllerClient
from kubecontroller.api.source import ResourceSource, check_connectivity
from kubecontroller.config import ControllerConfig, EmitterConfig, load_config
from kubecontroller.constants import constants
from kubecontroller.emitter.publishers import LoggingPublisher, Publisher, WebhookPublisher
from kubecontroller.emitter.sink import ChannelEmitterSink
from kubecontroller.errors import ConfigError, ConnectivityError
from kubecontroller.informers.factory import InformerEngine
from kubecontroller.reconciler.node_reconciler import NodeReconciler
from kubecontroller.utils.logger import logger, set_log_level


def build_publisher(config: EmitterConfig) -> Publisher:
    """Pick the publisher for the outbound channel: a webhook if one is configured, logging otherwise."""
    if config.webhook_url:
        return WebhookPublisher(config.webhook_url, timeout=config.webhook_timeout)
    return LoggingPublisher()


class ControllerApp:
    """
    ControllerApp is the application context. It is built once at startup
    and hands the same source, engine and sink to everything that needs them.

    Typical use:

        app = ControllerApp(load_config())
        app.install_signal_handlers()
        sys.exit(app.run())
    """

    def __init__(
        self,
        config: ControllerConfig,
        source: Optional[ResourceSource] = None,
        publisher: Optional[Publisher] = None,
    ):
        """
        Initialize a new ControllerApp.

        Args:
            config: The controller configuration
            source: Resource source to use instead of a kubeconfig-backed client
            publisher: Publisher to use instead of the configured one
        """
        self.config = config
        self.client = None  # type: Optional[ControllerClient]
        if source is None:
            self.client = ControllerClient(
                config_file=config.kubernetes.kubeconfig,
                context=config.kubernetes.context,
                namespace=config.kubernetes.namespace,
            )
            source = self.client.source
        self.source = source
        self.engine = InformerEngine.from_config(source, config.informer)
        self.sink = ChannelEmitterSink(
            publisher or build_publisher(config.emitter),
            buffer_size=config.emitter.buffer_size,
            send_timeout=config.emitter.send_timeout,
        )
        self.reconciler = None  # type: Optional[NodeReconciler]
        self._shutdown = threading.Event()
        self._stop_lock = threading.Lock()
        self._stopped = False

    def install_signal_handlers(self) -> None:
        """Request a shutdown on SIGTERM and SIGINT. Must be called from the main thread."""
        signal.signal(signal.SIGTERM, self._on_signal)
        signal.signal(signal.SIGINT, self._on_signal)

    def _on_signal(self, signum, frame) -> None:
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        self.request_shutdown()

    def request_shutdown(self) -> None:
        self._shutdown.set()

    def start(self) -> Dict[str, bool]:
        """
        Run the health check, start the informers and attach the node reconciler.

        Returns:
            Dictionary mapping resource types to whether they synced

        Raises:
            ConnectivityError: If the API server cannot be reached; no
                informer is started in that case
        """
        check_connectivity(self.source, self.config.kubernetes.health_check_timeout)

        v1 = self.engine.core().v1()
        nodes, pods, services = v1.nodes(), v1.pods(), v1.services()
        for typed in (nodes, pods, services):
            typed.informer()

        self.sink.start()
        synced = self.engine.start_all(timeout=self.config.informer.sync_timeout)

        self.reconciler = NodeReconciler(
            pods.lister(),
            services.lister(),
            self.sink,
            port_mode=self.config.reconciler.port_mode,
        )
        self.engine.add_handler(constants.RESOURCE_NODE, self.reconciler)
        return synced

    def run(self) -> int:
        """
        Start the controller and block until a shutdown is requested.

        Returns:
            Process exit status
        """
        try:
            synced = self.start()
        except ConnectivityError as e:
            logger.error(f"Health check failed, not starting informers: {e}")
            return 1

        unsynced = sorted(t for t, ok in synced.items() if not ok)
        if unsynced:
            logger.error(f"Informers for {', '.join(unsynced)} did not sync, exiting")
            self.stop()
            return 1

        logger.info("Controller running")
        while not self._shutdown.wait(1.0):
            pass
        self.stop()
        return 0

    def stop(self) -> None:
        """Stop informers, finishing queued handler work, then flush the sink. Idempotent."""
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True
        timeout = self.config.informer.stop_timeout
        if not self.engine.stop_all(drain=True, timeout=timeout):
            logger.warning(f"Some informers did not stop within {timeout}s")
        self.sink.close(drain=True, timeout=timeout)
        logger.info("Controller stopped")


def main() -> int:
    try:
        config = load_config()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    set_log_level(config.log_level)

    try:
        app = ControllerApp(config)
    except ConfigException as e:
        logger.error(f"Could not load Kubernetes configuration: {e}")
        return 1
    app.install_signal_handlers()
    return app.run()
