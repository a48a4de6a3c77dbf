"""Best-effort fan-out of domain events

Delivery is at-most-once: a failed send is logged and counted, never retried
and never raised to the operation that produced the event.
"""

import logging
from typing import Any, Dict, Protocol

import httpx

from groupbuy_gateway.config import settings
from groupbuy_gateway.infrastructure.observability.metrics import notification_failure_counter
from groupbuy_gateway.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

BROADCAST_CHANNEL = "broadcast"


class Notifier(Protocol):
    def notify_channel(self, channel_id: str, event: str, payload: Dict[str, Any]) -> None:
        ...

    def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """Writes events to the log; default when no webhook is configured"""

    def notify_channel(self, channel_id: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info("Notification", extra={"channel": channel_id, "event": event, "payload": payload})

    def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        self.notify_channel(BROADCAST_CHANNEL, event, payload)


class WebhookNotifier:
    """Client that POSTs each event to the realtime gateway"""

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds

    def notify_channel(self, channel_id: str, event: str, payload: Dict[str, Any]) -> None:
        body = {
            "channel": channel_id,
            "event": event,
            "payload": payload,
            "timestamp": utcnow().isoformat(),
        }
        try:
            response = httpx.post(self.webhook_url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            notification_failure_counter.labels(event=event).inc()
            logger.warning(
                f"Notification dropped: {e}",
                extra={"channel": channel_id, "event": event},
            )

    def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        self.notify_channel(BROADCAST_CHANNEL, event, payload)


def build_notifier() -> Notifier:
    """Pick the notifier implementation from configuration"""
    if settings.notification_webhook_url:
        return WebhookNotifier()
    return LoggingNotifier()
