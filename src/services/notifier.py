"""Email notifier: best-effort delivery through an HTTP email API."""

import asyncio
from typing import Optional
import httpx

from src.models.notification import DeliveryResult
from src.utils.config import ServiceConfig
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

SIGN_OFF = "Thank you for using Second Serve!"


class EmailNotifier:
    """Send plain-text emails with bounded retries.

    send() never raises: every failure, including a missing API key, comes
    back as a DeliveryResult with success=False.
    """

    def __init__(
        self,
        api_key: Optional[str],
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "EmailNotifier":
        return cls(
            api_key=config.email_api_key,
            sender=config.email_from,
            api_url=config.email_api_url,
            max_retries=config.notify_max_retries,
            backoff_seconds=config.notify_backoff_seconds,
            timeout_seconds=config.notify_timeout_seconds,
        )

    async def _post_once(self, client: httpx.AsyncClient, to: str, subject: str, body: str) -> None:
        response = await client.post(
            self.api_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "from": self.sender,
                "to": [to],
                "subject": subject,
                "text": f"{body}\n\n{SIGN_OFF}",
            },
        )
        response.raise_for_status()

    async def send(self, to: Optional[str], subject: str, body: str) -> DeliveryResult:
        """Deliver one message; 1 attempt + max_retries with linear backoff."""
        if not to:
            logger.warning("Email skipped (no recipient)", subject=subject)
            return DeliveryResult(success=False, message="No recipient address", recipient=to)

        if not self.api_key:
            logger.warning("Email skipped (delivery not configured)", recipient=to, subject=subject)
            return DeliveryResult(success=False, message="Email delivery is not configured", recipient=to)

        attempts = 0
        last_error = ""
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            for attempt in range(self.max_retries + 1):
                attempts = attempt + 1
                if attempt > 0:
                    await asyncio.sleep(self.backoff_seconds * attempt)
                try:
                    await self._post_once(client, to, subject, body)
                    logger.info(
                        "Email sent",
                        recipient=to,
                        subject=subject,
                        attempts=attempts,
                    )
                    return DeliveryResult(
                        success=True,
                        message="Email sent successfully",
                        recipient=to,
                        attempts=attempts,
                    )
                except (httpx.HTTPError, httpx.InvalidURL) as e:
                    last_error = str(e) or e.__class__.__name__
                    logger.warning(
                        "Email attempt failed",
                        recipient=to,
                        subject=subject,
                        attempt=attempts,
                        max_attempts=self.max_retries + 1,
                        error=last_error,
                    )

        return DeliveryResult(
            success=False,
            message=f"Failed to send email after {attempts} attempt(s): {last_error}",
            recipient=to,
            attempts=attempts,
        )
