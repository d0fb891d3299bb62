"""Outbound notifications to the notification service (best-effort)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from usersvc.config import get_settings

logger = structlog.get_logger()

PASSWORD_RESET_TITLE = "Password reset requested"
PASSWORD_RESET_MESSAGE = (
    "A password reset was requested for your account. "
    "If this was you, please follow the reset instructions."
)


class NotificationClient:
    """POSTs JSON notifications authenticated with the shared service token.

    Without a configured URL every call is a logged no-op. Delivery failures
    are logged and never raised.
    """

    def __init__(
        self,
        url: str,
        service_token: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.service_token = service_token
        self.timeout = timeout
        self._transport = transport

    async def notify(self, email: str, fields: dict[str, Any]) -> bool:
        """Send one notification. Returns True when the remote side accepted it."""
        if not self.url:
            logger.info("notification_skipped", reason="notification_service_url not configured")
            return False

        headers = {"Content-Type": "application/json"}
        if self.service_token:
            headers["X-Service-Token"] = self.service_token

        payload = {"email": email, **fields}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("notification_failed", error=type(e).__name__)
            return False

        if not response.is_success:
            logger.warning("notification_rejected", status=response.status_code)
            return False

        logger.info("notification_sent", status=response.status_code, type=fields.get("type"))
        return True

    async def send_password_reset(self, email: str, raw_token: str) -> bool:
        """Deliver the reset token to the user through the notification service."""
        return await self.notify(
            email,
            {
                "title": PASSWORD_RESET_TITLE,
                "message": PASSWORD_RESET_MESSAGE,
                "type": "system_alert",
                "token": raw_token,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )


def get_notification_client() -> NotificationClient:
    """Build the client from application settings."""
    settings = get_settings()
    return NotificationClient(
        url=settings.notification_service_url,
        service_token=settings.notification_service_token,
        timeout=settings.notification_timeout_seconds,
    )
