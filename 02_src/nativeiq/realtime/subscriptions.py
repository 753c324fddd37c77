"""Realtime Subscription Manager: one live message subscription per session."""

import asyncio
import inspect
from typing import Awaitable, Callable, Protocol

from ..errors import SubscriptionError
from ..logging_config import get_logger
from ..models import Author, Message
from .hub import IRealtimeHub, RealtimeSubscription

logger = get_logger(__name__)


MessageHandler = Callable[[Message], Awaitable[None] | None]


class AuthorLookup(Protocol):
    """Resolves the identity joined onto user-authored messages."""

    async def get_author(self, author_id: str) -> Author | None:
        ...


class RealtimeSubscriptionManager:
    """Keeps at most one live subscription, scoped to a single channel.

    Subscribing always tears down the previous subscription first, and a
    subscription's handler stops forwarding as soon as it is torn down, so
    late deliveries for an old channel never reach the session.
    """

    def __init__(self, hub: IRealtimeHub, authors: AuthorLookup):
        self._hub = hub
        self._authors = authors
        self._subscription: RealtimeSubscription | None = None
        self._channel_id: str | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def channel_id(self) -> str | None:
        """Channel of the live subscription, if any."""
        return self._channel_id

    @property
    def is_active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def subscribe(
        self,
        channel_id: str,
        on_insert: MessageHandler,
        is_current: Callable[[], bool] | None = None,
    ) -> bool:
        """Replace any live subscription with one for channel_id.

        `is_current` is checked after teardown; when it returns False the
        session no longer wants this channel and nothing is subscribed.
        """
        async with self._lock:
            await self._teardown()
            if is_current is not None and not is_current():
                logger.debug("Skipped subscription to superseded channel %s", channel_id)
                return False

            self._generation += 1
            self._channel_id = channel_id
            try:
                self._subscription = await self._hub.subscribe(
                    f"messages:{channel_id}",
                    "messages",
                    self._make_handler(self._generation, on_insert),
                    filters={"channel_id": channel_id},
                )
            except Exception as e:
                self._channel_id = None
                raise SubscriptionError(
                    f"Failed to subscribe to channel {channel_id}: {e}"
                ) from e

            logger.info("Subscribed to channel %s", channel_id, extra={"channel_id": channel_id})
            return True

    async def unsubscribe(self) -> None:
        """Tear down the live subscription. Safe when none is active."""
        async with self._lock:
            await self._teardown()

    async def _teardown(self) -> None:
        if self._subscription is None:
            return

        subscription, channel_id = self._subscription, self._channel_id
        self._subscription = None
        self._channel_id = None
        self._generation += 1
        await self._hub.remove(subscription)
        logger.info("Unsubscribed from channel %s", channel_id, extra={"channel_id": channel_id})

    def _make_handler(self, generation: int, on_insert: MessageHandler):
        async def handle_insert(row: dict) -> None:
            if self._generation != generation:
                return

            message = await self._materialize(row)

            # Torn down while resolving the author
            if self._generation != generation:
                return

            result = on_insert(message)
            if inspect.isawaitable(result):
                await result

        return handle_insert

    async def _materialize(self, row: dict) -> Message:
        message = Message.from_row(row)
        if message.author_id and message.author is None:
            try:
                message.author = await self._authors.get_author(message.author_id)
            except Exception as e:
                logger.warning(
                    "Could not resolve author %s for message %s: %s",
                    message.author_id,
                    message.id,
                    e,
                )
        return message
