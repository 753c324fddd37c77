"""Transactional email sender for invites (Resend HTTP API)."""

import os
from typing import Protocol

import httpx

from ..errors import EmailDeliveryError

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM_EMAIL = "Native <invites@nativeiq.app>"


class IEmailSender(Protocol):
    """Sends invite emails."""

    async def send_invite(self, to: str, invite_link: str, inviter_name: str | None) -> None:
        """Send one invite email; raises EmailDeliveryError on failure."""
        ...


class ResendEmailSender:
    """Sends invite emails through Resend."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str | None = None,
        from_email: str | None = None,
        api_url: str = RESEND_API_URL,
    ):
        self._client = client
        self._api_key = api_key or os.getenv("RESEND_API_KEY")
        self._from_email = from_email or os.getenv("INVITE_FROM_EMAIL", DEFAULT_FROM_EMAIL)
        self._api_url = api_url

    async def send_invite(self, to: str, invite_link: str, inviter_name: str | None) -> None:
        if not self._api_key:
            raise EmailDeliveryError("RESEND_API_KEY not configured")

        inviter = inviter_name or "A teammate"
        payload = {
            "from": self._from_email,
            "to": [to],
            "subject": f"{inviter} invited you to NativeIQ",
            "html": (
                f"<p>{inviter} invited you to join their team on NativeIQ.</p>"
                f'<p><a href="{invite_link}">Accept the invite</a></p>'
                "<p>This link expires in 7 days.</p>"
            ),
        }

        try:
            response = await self._client.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Email provider unreachable: {e}") from e

        if response.is_error:
            raise EmailDeliveryError(f"Email provider returned {response.status_code}")
