"""
EmitterSink decouples reconciliation from the speed of the downstream consumer.
"""

import queue
import threading
from typing import Optional

from kubecontroller.constants import constants
from kubecontroller.emitter.publishers import Publisher
from kubecontroller.errors import EmitterBackpressureError, EmitterClosedError
from kubecontroller.models import DerivedEvent
from kubecontroller.utils.logger import logger

_CLOSE = object()


class EmitterSink:
    """
    EmitterSink accepts derived events for delivery to an external channel.

    Implementations must be safe to call from several threads at once.
    """

    def send(self, event: DerivedEvent) -> None:
        """
        Hand over one event. Ownership passes to the sink.

        Args:
            event: The event to deliver

        Raises:
            EmitError: If the event was not accepted; the caller decides
                whether to carry on with its remaining events
        """
        raise NotImplementedError

    def close(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        """Stop accepting events, optionally flushing what is buffered."""
        pass


class ChannelEmitterSink(EmitterSink):
    """
    ChannelEmitterSink buffers events in a bounded queue drained by a
    single publisher thread.

    send() blocks for at most send_timeout while the buffer is full and then
    raises EmitterBackpressureError.
    """

    def __init__(
        self,
        publisher: Publisher,
        buffer_size: int = constants.DEFAULT_EMITTER_BUFFER,
        send_timeout: float = constants.DEFAULT_EMITTER_SEND_TIMEOUT_SECONDS,
        channel: str = constants.EMITTER_CHANNEL_NAME,
    ):
        """
        Initialize a new ChannelEmitterSink.

        Args:
            publisher: Delivers events to the external consumer
            buffer_size: Maximum number of events waiting for the publisher
            send_timeout: Seconds send() waits for buffer space
            channel: Channel name used in log lines
        """
        self._publisher = publisher
        self._buffer = queue.Queue(maxsize=buffer_size)  # type: queue.Queue
        self._send_timeout = send_timeout
        self._channel = channel
        self._lock = threading.Lock()
        self._closed = False
        self._thread = None  # type: Optional[threading.Thread]
        self.published = 0
        self.failed = 0

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._publish_loop, name=f"emitter-{self._channel}", daemon=True
            )
            self._thread.start()
        logger.info(f"Emitter for channel {self._channel} started ({self._publisher.name})")

    def send(self, event: DerivedEvent) -> None:
        # close() takes the same lock, so an accepted event is always queued
        # ahead of the close marker
        with self._lock:
            if self._closed:
                raise EmitterClosedError(f"Channel {self._channel} is closed")
            try:
                self._buffer.put(event, timeout=self._send_timeout)
            except queue.Full:
                raise EmitterBackpressureError(
                    f"Channel {self._channel} still full after {self._send_timeout}s, "
                    f"dropping event for {event.service_name}"
                )

    def pending(self) -> int:
        return self._buffer.qsize()

    def _publish_loop(self) -> None:
        while True:
            event = self._buffer.get()
            try:
                if event is _CLOSE:
                    return
                if self._publisher.publish(event):
                    self.published += 1
                else:
                    self.failed += 1
            except Exception as e:
                self.failed += 1
                logger.exception(f"Publisher {self._publisher.name} failed on {event}: {e}")
            finally:
                self._buffer.task_done()

    def close(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread

        if not drain:
            dropped = 0
            while True:
                try:
                    self._buffer.get_nowait()
                except queue.Empty:
                    break
                self._buffer.task_done()
                dropped += 1
            if dropped:
                logger.warning(f"Dropped {dropped} buffered events on channel {self._channel}")

        if thread is not None:
            try:
                self._buffer.put(_CLOSE, timeout=timeout)
            except queue.Full:
                logger.warning(f"Timed out flushing channel {self._channel}")
            else:
                thread.join(timeout)
                if thread.is_alive():
                    logger.warning(f"Publisher thread for {self._channel} did not exit within {timeout}s")
        self._publisher.close()
        logger.info(
            f"Emitter for channel {self._channel} closed: {self.published} published, {self.failed} failed"
        )
