"""Email delivery service using Resend API."""

import logging
from typing import Any

import httpx

from rlly.core.config import settings
from rlly.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailService:
    """Sends transactional emails via the Resend API."""

    def __init__(self, api_key: str | None = None, from_address: str | None = None) -> None:
        self.api_key = settings.resend_api_key if api_key is None else api_key
        self.from_address = from_address or settings.email_from

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        tags: list[dict[str, str]] | None = None,
    ) -> str | None:
        """Send one email.

        Returns the Resend email ID, or None when no API key is configured
        (local development). Raises EmailDeliveryError when the provider
        rejects the request or cannot be reached.
        """
        payload: dict[str, Any] = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            payload["text"] = text
        if tags:
            payload["tags"] = tags

        if not self.api_key:
            logger.warning("Resend API key not configured, email not sent to %s", to)
            return None

        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            logger.exception("Error sending email to %s", to)
            raise EmailDeliveryError(f"Mail provider unreachable: {exc}") from exc

        if not response.is_success:
            logger.error(
                "Failed to send email: to=%s status=%s body=%s",
                to,
                response.status_code,
                response.text[:500],
            )
            raise EmailDeliveryError(f"Mail provider returned {response.status_code}")

        email_id = response.json().get("id")
        logger.info("Email sent: to=%s id=%s", to, email_id)
        return str(email_id) if email_id else None
