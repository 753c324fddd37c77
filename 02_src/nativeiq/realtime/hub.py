"""In-process realtime hub delivering row-insert events to subscribers."""

import asyncio
import uuid
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)


InsertHandler = Callable[[dict], Awaitable[None]]


class RealtimeSubscription:
    """Handle for one live subscription to a table's insert events."""

    def __init__(
        self,
        topic: str,
        table: str,
        handler: InsertHandler,
        filters: dict | None = None,
    ):
        self.id = str(uuid.uuid4())
        self.topic = topic
        self.table = table
        self.handler = handler
        self.filters = dict(filters or {})
        self.active = True

    def matches(self, row: dict) -> bool:
        """Equality match of every filter column against the row."""
        return all(row.get(column) == value for column, value in self.filters.items())


class IRealtimeHub(Protocol):
    """Pub/sub for row inserts, filtered by column equality."""

    async def subscribe(
        self,
        topic: str,
        table: str,
        handler: InsertHandler,
        filters: dict | None = None,
    ) -> RealtimeSubscription:
        """Register a handler for inserts into table matching filters."""
        ...

    async def remove(self, subscription: RealtimeSubscription) -> None:
        """Remove a subscription. Idempotent."""
        ...

    async def publish_insert(self, table: str, row: dict) -> None:
        """Deliver an inserted row to every matching subscriber."""
        ...

    def active_subscriptions(self, table: str | None = None) -> list[RealtimeSubscription]:
        """Live subscriptions, optionally for one table."""
        ...


class RealtimeHub:
    """In-memory realtime hub."""

    def __init__(self):
        self._subscriptions: dict[str, list[RealtimeSubscription]] = {}

    async def subscribe(
        self,
        topic: str,
        table: str,
        handler: InsertHandler,
        filters: dict | None = None,
    ) -> RealtimeSubscription:
        """Register a handler for inserts into table matching filters."""
        subscription = RealtimeSubscription(topic, table, handler, filters)
        self._subscriptions.setdefault(table, []).append(subscription)
        logger.debug("Realtime subscription %s joined %s", subscription.id, topic)
        return subscription

    async def remove(self, subscription: RealtimeSubscription) -> None:
        """Remove a subscription. Idempotent."""
        if not subscription.active:
            return
        subscription.active = False
        subscribers = self._subscriptions.get(subscription.table, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        logger.debug("Realtime subscription %s left %s", subscription.id, subscription.topic)

    async def publish_insert(self, table: str, row: dict) -> None:
        """Deliver an inserted row to every matching subscriber."""
        targets = [
            subscription
            for subscription in self._subscriptions.get(table, [])
            if subscription.matches(row)
        ]
        if not targets:
            return

        # Each handler gets its own copy of the row
        results = await asyncio.gather(
            *[subscription.handler(dict(row)) for subscription in targets],
            return_exceptions=True,
        )

        for subscription, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.error(
                    "Error in realtime handler for %s: %s",
                    subscription.topic,
                    result,
                    exc_info=result,
                )

    def active_subscriptions(self, table: str | None = None) -> list[RealtimeSubscription]:
        """Live subscriptions, optionally for one table."""
        if table is not None:
            return list(self._subscriptions.get(table, []))
        return [s for subscribers in self._subscriptions.values() for s in subscribers]
