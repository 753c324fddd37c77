"""Invite route."""

from fastapi import APIRouter, Header
from pydantic import BaseModel

from ...app import Application
from ...errors import InviteError
from ..errors import error_response


class InviteRequest(BaseModel):
    """Request model for inviting one or more addresses."""

    email: str | None = None
    emails: list[str] | None = None
    organizationId: str = ""


def create_invites_router(app: Application) -> APIRouter:
    """Create invites router."""
    router = APIRouter(prefix="/api", tags=["invites"])

    @router.post("/invite")
    async def invite_members(
        request: InviteRequest,
        x_user_id: str | None = Header(None),
    ):
        """Invite addresses to an organization (owners and admins only)."""
        emails = list(request.emails or [])
        if request.email:
            emails.insert(0, request.email)
        if not emails or not request.organizationId:
            return error_response(400, "BAD_REQUEST", "Email and organization ID are required")
        if not x_user_id:
            return error_response(401, "UNAUTHORIZED", "Authentication required")

        try:
            results = await app.invites.invite(x_user_id, request.organizationId, emails)
        except InviteError as e:
            return error_response(e.status, e.code, e.message)

        return {
            "success": all(result.success for result in results),
            "results": [result.to_dict() for result in results],
        }

    return router
