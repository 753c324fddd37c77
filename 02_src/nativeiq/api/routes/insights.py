"""Organization insights route."""

from fastapi import APIRouter, Header, Query

from ...app import Application
from ...logging_config import get_logger
from ..errors import error_response

logger = get_logger(__name__)


def create_insights_router(app: Application) -> APIRouter:
    """Create insights router."""
    router = APIRouter(prefix="/api", tags=["insights"])

    @router.get("/insights")
    async def list_insights(
        type: str | None = Query(None, description="Filter by insight type"),
        impact: str | None = Query(None, description="Filter by impact"),
        team: str | None = Query(None, description="Match against source labels"),
        x_user_id: str | None = Header(None),
    ):
        """List the caller's organization insights, newest first."""
        profile = await app.storage.get_profile(x_user_id) if x_user_id else None
        if profile is None:
            return error_response(401, "UNAUTHORIZED", "Authentication required")
        if not profile.organization_id:
            return error_response(403, "NO_ORGANIZATION", "User not in an organization")

        try:
            insights = await app.storage.list_insights(
                profile.organization_id, insight_type=type, impact=impact
            )
        except Exception as e:
            logger.error(
                "Error fetching insights: %s",
                e,
                exc_info=True,
                extra={"organization_id": profile.organization_id},
            )
            return error_response(500, "FETCH_ERROR", "Failed to fetch insights")

        if team:
            insights = [insight for insight in insights if insight.mentions_team(team)]

        return {"items": [insight.to_dict() for insight in insights]}

    return router
