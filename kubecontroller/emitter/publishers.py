"""
Publishers deliver derived events to the external consumer.

A publisher is what sits behind the emitter sink's buffer; it runs on the
sink's publisher thread, one event at a time.
"""

import json
from typing import Dict, Optional

import httpx

from kubecontroller.models import DerivedEvent
from kubecontroller.utils.logger import logger


class Publisher:
    """Publisher hands one event to the outbound channel."""

    name = "publisher"

    def publish(self, event: DerivedEvent) -> bool:
        """
        Deliver one event.

        Returns:
            True if the channel accepted the event
        """
        raise NotImplementedError

    def close(self) -> None:
        pass


class LoggingPublisher(Publisher):
    """Writes each event as a JSON log line."""

    name = "log"

    def publish(self, event: DerivedEvent) -> bool:
        logger.info(f"Derived event: {json.dumps(event.to_dict(), sort_keys=True)}")
        return True


class WebhookPublisher(Publisher):
    """
    Delivers events by POSTing a JSON payload to a configurable URL.

    Args:
        url:     Full endpoint URL
        headers: Optional extra headers (e.g. Authorization)
        timeout: HTTP request timeout in seconds
        client:  Optional preconfigured httpx.Client
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._client = client or httpx.Client(timeout=timeout)

    def publish(self, event: DerivedEvent) -> bool:
        """
        POST the event as JSON.

        Returns:
            True on a 2xx response, False otherwise
        """
        try:
            response = self._client.post(self._url, json=event.to_dict(), headers=self._headers)
        except httpx.TimeoutException:
            logger.warning(f"Webhook request timed out for {event.service_name} ({self._url})")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Webhook request failed for {event.service_name}: {e}")
            return False

        if response.is_success:
            return True
        logger.warning(
            f"Webhook returned {response.status_code} for {event.service_name}: {response.text[:200]}"
        )
        return False

    def close(self) -> None:
        self._client.close()
