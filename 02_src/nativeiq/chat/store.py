"""Message Store Accessor: history reads and message inserts."""

from datetime import datetime

from ..errors import FetchError, SendError
from ..logging_config import get_logger
from ..models import Message
from ..storage import IStorage

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class MessageStore:
    """Reads and writes messages on behalf of one signed-in user.

    Does not retry; callers decide on retry policy.
    """

    def __init__(self, storage: IStorage, current_user_id: str):
        self._storage = storage
        self._current_user_id = current_user_id

    @property
    def current_user_id(self) -> str:
        return self._current_user_id

    async def fetch_history(
        self,
        channel_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
        before: datetime | None = None,
    ) -> list[Message]:
        """Newest `limit` messages (optionally older than `before`), oldest first."""
        try:
            return await self._storage.get_messages(channel_id, limit=limit, before=before)
        except Exception as e:
            logger.error("Failed to fetch messages: %s", e, extra={"channel_id": channel_id})
            raise FetchError(f"Failed to fetch messages: {e}") from e

    async def append_message(
        self,
        channel_id: str,
        content: str,
        *,
        is_assistant: bool = False,
        metadata: dict | None = None,
    ) -> Message:
        """Insert a message; assistant messages are stored without an author."""
        text = content.strip()
        if not text:
            raise ValueError("Message content must not be empty")

        try:
            return await self._storage.insert_message(
                channel_id=channel_id,
                author_id=None if is_assistant else self._current_user_id,
                content=text,
                is_ai_response=is_assistant,
                metadata=metadata,
            )
        except Exception as e:
            logger.error(
                "Failed to send message: %s",
                e,
                extra={"channel_id": channel_id, "user_id": self._current_user_id},
            )
            raise SendError(f"Failed to send message: {e}") from e
