"""Organization-scoped records: profiles, context records, invites."""

from dataclasses import dataclass
from datetime import datetime

from .messages import MemberRole


@dataclass
class Profile:
    """A user's profile as held by the backend."""

    id: str
    full_name: str | None = None
    avatar_url: str | None = None
    organization_id: str | None = None
    role: MemberRole = MemberRole.MEMBER
    email: str | None = None

    def __post_init__(self):
        self.role = MemberRole(self.role)

    @property
    def can_invite(self) -> bool:
        return self.role in (MemberRole.OWNER, MemberRole.ADMIN)


@dataclass
class ContextRecord:
    """A curated organization fact used to ground assistant answers."""

    id: str
    organization_id: str
    title: str
    content: str
    updated_at: datetime


@dataclass
class Invite:
    """An invitation for an email address to join an organization."""

    id: str
    organization_id: str
    email: str
    invite_code: str
    invited_by: str
    created_at: datetime
    expires_at: datetime
    sent_at: datetime | None = None
