"""Notification transports.

Delivery is fire-and-forget: notifications are emitted after the transaction
that produced them has committed, and a transport failure is logged and
swallowed. Protocol state never depends on a notification arriving.

Notification types:

    letter_sent             receiver, on submit_send
    letter_received         sender, on confirmation
    verification_reminder   receiver, reminder window
    verification_escalated  receiver, escalation window
    letter_auto_verified    both parties, auto-verify window
    letter_not_arrived      sender, when a dispute is raised
    dispute_resolved        both parties
    mission_completed       both parties
    cancel_requested        counterpart
    penpal_cancelled        both parties, on approval
    cancel_rejected         requester
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol

import requests

from penpal_server.exchange.transaction import Notification

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def emit(self, user_id: str, type: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default transport: writes each notification to the log."""

    def emit(self, user_id: str, type: str, payload: dict[str, Any]) -> None:
        logger.info("notify %s [%s] %s", user_id, type, payload)


class WebhookNotifier:
    """POST each notification as JSON to an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def emit(self, user_id: str, type: str, payload: dict[str, Any]) -> None:
        body = {
            "user_id": user_id,
            "type": type,
            "payload": payload,
            "created_at": datetime.now(UTC).isoformat(),
        }
        response = self.session.post(self.url, json=body, timeout=self.timeout_seconds)
        response.raise_for_status()


def build_notifier(webhook_url: str = "", timeout_seconds: float = 5.0) -> Notifier:
    if webhook_url.strip():
        return WebhookNotifier(webhook_url.strip(), timeout_seconds=timeout_seconds)
    return LoggingNotifier()


def deliver(notifier: Notifier, notifications: Iterable[Notification]) -> int:
    """Emit every notification, returning how many were delivered."""
    delivered = 0
    for item in notifications:
        try:
            notifier.emit(item.user_id, item.type, item.payload)
        except requests.exceptions.RequestException as exc:
            logger.warning("Notification %s to %s failed: %s", item.type, item.user_id, exc)
        except Exception:
            logger.warning("Notification %s to %s failed", item.type, item.user_id,
                           exc_info=True)
        else:
            delivered += 1
    return delivered
