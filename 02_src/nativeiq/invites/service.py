"""Invite service: permission checks, resend cooldown, invite records."""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ..errors import EmailDeliveryError, InviteError
from ..logging_config import get_logger
from ..models import Invite
from ..storage import IStorage
from ..tracker import ITracker
from .email import IEmailSender

logger = get_logger(__name__)

MAX_BATCH_SIZE = 5
RESEND_COOLDOWN = timedelta(hours=24)
INVITE_TTL = timedelta(days=7)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class InviteResult:
    """Outcome for one address."""

    email: str
    success: bool
    invite_link: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        result = {"email": self.email, "success": self.success}
        if self.invite_link:
            result["inviteLink"] = self.invite_link
        if self.error:
            result["error"] = self.error
        return result


class InviteService:
    """Creates invites and emails signup links."""

    def __init__(
        self,
        storage: IStorage,
        email_sender: IEmailSender,
        app_url: str,
        tracker: ITracker | None = None,
    ):
        self._storage = storage
        self._email = email_sender
        self._app_url = app_url.rstrip("/")
        self._tracker = tracker

    async def invite(
        self, inviter_id: str, organization_id: str, emails: list[str]
    ) -> list[InviteResult]:
        """Invite up to MAX_BATCH_SIZE addresses; per-address results."""
        inviter = await self._storage.get_profile(inviter_id)
        if inviter is None:
            raise InviteError(401, "UNAUTHORIZED", "Authentication required")
        if inviter.organization_id != organization_id:
            raise InviteError(403, "FORBIDDEN", "Not a member of this organization")
        if not inviter.can_invite:
            raise InviteError(403, "FORBIDDEN", "Only owners and admins can invite members")

        addresses = list(dict.fromkeys(e.strip().lower() for e in emails if e and e.strip()))
        if not addresses:
            raise InviteError(400, "BAD_REQUEST", "At least one email is required")
        if len(addresses) > MAX_BATCH_SIZE:
            raise InviteError(
                400, "BAD_REQUEST", f"At most {MAX_BATCH_SIZE} invites can be sent at once"
            )

        return [
            await self._invite_one(inviter.id, inviter.full_name, organization_id, address)
            for address in addresses
        ]

    async def _invite_one(
        self,
        inviter_id: str,
        inviter_name: str | None,
        organization_id: str,
        email: str,
    ) -> InviteResult:
        if not _EMAIL_RE.match(email):
            return InviteResult(email=email, success=False, error="Invalid email address")

        now = datetime.now(timezone.utc)
        try:
            latest = await self._storage.get_latest_invite(organization_id, email)
        except Exception as e:
            return self._storage_failure(email, organization_id, e)
        if latest and latest.sent_at and now - latest.sent_at < RESEND_COOLDOWN:
            return InviteResult(
                email=email,
                success=False,
                error="An invite was already sent to this address in the last 24 hours",
            )

        invite = Invite(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            email=email,
            invite_code=str(uuid.uuid4()),
            invited_by=inviter_id,
            created_at=now,
            expires_at=now + INVITE_TTL,
        )
        try:
            await self._storage.save_invite(invite)
        except Exception as e:
            return self._storage_failure(email, organization_id, e)
        invite_link = f"{self._app_url}/signup?invite={invite.invite_code}"

        try:
            await self._email.send_invite(email, invite_link, inviter_name)
        except EmailDeliveryError as e:
            logger.error(
                "Invite email failed: %s", e, extra={"organization_id": organization_id}
            )
            return InviteResult(email=email, success=False, invite_link=invite_link, error=str(e))

        try:
            await self._storage.mark_invite_sent(invite.id, datetime.now(timezone.utc))
        except Exception as e:
            return self._storage_failure(email, organization_id, e, invite_link=invite_link)
        if self._tracker:
            await self._tracker.track(
                "invite_sent",
                "invite_service",
                {"organization_id": organization_id, "invite_id": invite.id},
            )
        return InviteResult(email=email, success=True, invite_link=invite_link)

    def _storage_failure(
        self,
        email: str,
        organization_id: str,
        error: Exception,
        invite_link: str | None = None,
    ) -> InviteResult:
        logger.error(
            "Invite storage failed: %s",
            error,
            exc_info=error,
            extra={"organization_id": organization_id},
        )
        return InviteResult(
            email=email,
            success=False,
            invite_link=invite_link,
            error="Failed to record invite",
        )
