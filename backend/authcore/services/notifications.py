"""Outbound notifications (OTP delivery, login alerts).

Mail delivery itself is external; this module hands messages to a relay
webhook. Sending is fire-and-forget relative to the auth transaction: a
failure is logged and discarded so transport flakiness never changes an
authentication result.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from authcore.core.config import settings

logger = logging.getLogger(__name__)

# Short timeout for relay calls - don't block the login request
_NOTIFY_TIMEOUT = 5.0

# Templates understood by the mail relay
TEMPLATE_OTP_CODE = "otp_code"
TEMPLATE_LOGIN_ALERT = "login_notification"


class Notifier(Protocol):
    async def send(self, to: str, template: str, context: dict[str, Any]) -> None: ...


class WebhookNotifier:
    """Posts notification requests to the mail relay webhook."""

    def __init__(self, url: str, timeout: float = _NOTIFY_TIMEOUT):
        self.url = url
        self.timeout = timeout

    async def send(self, to: str, template: str, context: dict[str, Any]) -> None:
        payload = {
            "to": to,
            "template": template,
            "context": context,
            "source": settings.app_name,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


class LoggingNotifier:
    """Used when no relay is configured. Never logs the message context."""

    async def send(self, to: str, template: str, context: dict[str, Any]) -> None:
        logger.info("Notification relay not configured; dropped %s message", template)


def get_notifier() -> Notifier:
    """Notifier for the configured relay."""
    if settings.notification_webhook_url:
        return WebhookNotifier(settings.notification_webhook_url)
    return LoggingNotifier()


async def notify_best_effort(
    notifier: Notifier,
    to: str | None,
    template: str,
    context: dict[str, Any],
) -> bool:
    """Send a notification, swallowing every failure.

    Returns True when the notifier accepted the message.
    """
    if not to:
        return False
    try:
        await notifier.send(to, template, context)
        return True
    except Exception as e:
        logger.warning("Notification %s failed: %s", template, e)
        return False
