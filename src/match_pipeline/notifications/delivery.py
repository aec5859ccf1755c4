"""Delivery collaborator: channels that hand a rendered digest to email/SMS.

Channels raise ``DeliveryFailure`` on any transport error.  The batcher
applies its own per-send timeout and never retries inline.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from match_pipeline.config.settings import Settings
from match_pipeline.errors import DeliveryFailure

logger = structlog.get_logger()

RESEND_API_URL = "https://api.resend.com/emails"


class DeliveryChannel(Protocol):
    async def send(self, recipient_contact: str, subject: str, body: str) -> None: ...

    async def aclose(self) -> None: ...


class ResendEmailChannel:
    """Email delivery through the Resend HTTP API.

    One ``httpx.AsyncClient`` is reused for every send so connections are
    pooled across a run.  ``aclose`` closes it.
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        client: httpx.AsyncClient | None = None,
        api_url: str = RESEND_API_URL,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._client = client or httpx.AsyncClient()
        self._api_url = api_url

    async def send(self, recipient_contact: str, subject: str, body: str) -> None:
        payload = {
            "from": self._sender,
            "to": [recipient_contact],
            "subject": subject,
            "html": body,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = await self._client.post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"Email transport error: {e}") from e

        if response.is_error:
            try:
                detail = response.json().get("message") or response.text
            except ValueError:
                detail = response.text
            logger.warning("resend_rejected", status=response.status_code, detail=detail)
            raise DeliveryFailure(f"Email provider returned {response.status_code}: {detail}")

    async def aclose(self) -> None:
        await self._client.aclose()


class LoggingChannel:
    """Dry-run channel for development: logs the message and reports success."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, recipient_contact: str, subject: str, body: str) -> None:
        self.sent.append((recipient_contact, subject))
        logger.info("delivery_dry_run", recipient=recipient_contact, subject=subject, body_chars=len(body))

    async def aclose(self) -> None:
        pass


def sender_address(settings: Settings) -> str:
    if settings.resend_domain:
        return f"{settings.email_from_name} <noreply@{settings.resend_domain}>"
    return f"{settings.email_from_name} <onboarding@resend.dev>"


def build_channel(settings: Settings) -> DeliveryChannel:
    """Resend when an API key is configured, otherwise the dry-run channel.

    The caller owns the returned channel and must ``aclose`` it on shutdown.
    """
    if settings.resend_api_key:
        return ResendEmailChannel(
            api_key=settings.resend_api_key,
            sender=sender_address(settings),
            client=httpx.AsyncClient(),
        )
    logger.warning("delivery_channel_dry_run", reason="no resend_api_key configured")
    return LoggingChannel()
