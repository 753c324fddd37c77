"""WebSocket route binding one chat session to each connection."""

import asyncio

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ...app import Application
from ...chat import ChatSession
from ...errors import ChatError
from ...logging_config import get_logger

logger = get_logger(__name__)

# Close code for a caller outside the organization
POLICY_VIOLATION = 4403


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        frame = await outbox.get()
        await websocket.send_json(frame)


async def _dispatch(session: ChatSession, frame: dict) -> str | None:
    """Run one client action. Returns an error text for malformed actions."""
    action = frame.get("action")

    if action == "select_channel":
        channel = next((c for c in session.channels if c.id == frame.get("channel_id")), None)
        if channel is None:
            return "Unknown channel"
        await session.select_channel(channel)
    elif action == "send_message":
        try:
            await session.send_message(str(frame.get("content", "")))
        except ChatError:
            pass  # recorded on session.error and pushed with the state frame
    elif action == "request_assistant":
        await session.request_assistant(str(frame.get("prompt", "")))
    elif action == "retry_assistant":
        await session.retry_assistant()
    elif action == "regenerate":
        message = next((m for m in session.messages if m.id == frame.get("message_id")), None)
        if message is None:
            return "Unknown message"
        await session.regenerate(message)
    elif action == "open_direct":
        member = next((m for m in session.members if m.id == frame.get("member_id")), None)
        if member is None:
            return "Unknown member"
        try:
            await session.open_direct_channel(member)
        except ChatError:
            pass  # recorded on session.error
    elif action == "load_older":
        await session.load_older_messages()
    elif action == "dismiss_error":
        session.dismiss_error()
    else:
        return f"Unknown action: {action}"
    return None


def create_sessions_router(app: Application) -> APIRouter:
    """Create chat session router."""
    router = APIRouter(tags=["sessions"])

    @router.websocket("/ws/chat/{organization_id}")
    async def chat_session(
        websocket: WebSocket,
        organization_id: str,
        user_id: str = Query(...),
    ) -> None:
        """Interactive chat session for one user of an organization."""
        profile = await app.storage.get_profile(user_id)
        if profile is None or profile.organization_id != organization_id:
            await websocket.close(code=POLICY_VIOLATION)
            return

        await websocket.accept()
        outbox: asyncio.Queue = asyncio.Queue()
        session = app.create_session(
            user_id,
            on_message=lambda message: outbox.put_nowait(
                {"type": "message", "message": message.to_dict()}
            ),
        )
        sender = asyncio.create_task(_pump(websocket, outbox))
        actions: set[asyncio.Task] = set()

        async def run(frame: dict) -> None:
            try:
                error = await _dispatch(session, frame)
            except Exception as e:
                logger.error("Chat action failed: %s", e, exc_info=True, extra={"user_id": user_id})
                error = "Action failed"
            if error:
                outbox.put_nowait({"type": "error", "message": error})
            outbox.put_nowait({"type": "state", "session": session.snapshot()})

        try:
            await session.open_organization(organization_id)
            outbox.put_nowait({"type": "state", "session": session.snapshot()})

            while True:
                frame = await websocket.receive_json()
                # Actions interleave like UI events
                task = asyncio.create_task(run(frame))
                actions.add(task)
                task.add_done_callback(actions.discard)
        except WebSocketDisconnect:
            logger.info("Chat session closed", extra={"user_id": user_id})
        finally:
            for task in list(actions):
                task.cancel()
            await session.close()
            sender.cancel()
            await asyncio.gather(sender, *actions, return_exceptions=True)

    return router
