"""Organization tasks route."""

from fastapi import APIRouter, Header, Query

from ...app import Application
from ...logging_config import get_logger
from ..errors import error_response

logger = get_logger(__name__)


def create_tasks_router(app: Application) -> APIRouter:
    """Create tasks router."""
    router = APIRouter(prefix="/api", tags=["tasks"])

    @router.get("/tasks")
    async def list_tasks(
        assignee: str | None = Query(None, description='Filter by assignee; "me" lists all'),
        state: str | None = Query(None, description="Filter by state"),
        x_user_id: str | None = Header(None),
    ):
        """List the caller's organization tasks, newest first."""
        profile = await app.storage.get_profile(x_user_id) if x_user_id else None
        if profile is None:
            return error_response(401, "UNAUTHORIZED", "Authentication required")
        if not profile.organization_id:
            return error_response(403, "NO_ORGANIZATION", "User not in an organization")

        try:
            tasks = await app.storage.list_tasks(
                profile.organization_id,
                assignee=assignee if assignee != "me" else None,
                state=state,
            )
        except Exception as e:
            logger.error(
                "Error fetching tasks: %s",
                e,
                exc_info=True,
                extra={"organization_id": profile.organization_id},
            )
            return error_response(500, "FETCH_ERROR", "Failed to fetch tasks")

        return {"items": [task.to_dict() for task in tasks]}

    return router
