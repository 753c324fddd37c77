"""Tracker implementation for creating TraceEvents."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..models import TraceEvent
from ..realtime import IRealtimeHub, RealtimeSubscription
from ..storage import IStorage


class ITracker(Protocol):
    """Creating TraceEvents. Two channels: realtime insert feed + direct calls."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        ...


class Tracker:
    """Creates TraceEvents from message inserts and direct track() calls."""

    def __init__(self, storage: IStorage, realtime: IRealtimeHub | None = None):
        self._storage = storage
        self._realtime = realtime
        self._subscription: RealtimeSubscription | None = None

    async def start(self) -> None:
        """Follow every message insert, across all channels."""
        if self._realtime and self._subscription is None:
            self._subscription = await self._realtime.subscribe(
                "tracker:messages", "messages", self._handle_insert
            )

    async def stop(self) -> None:
        """Stop following message inserts."""
        if self._realtime and self._subscription is not None:
            await self._realtime.remove(self._subscription)
            self._subscription = None

    async def _handle_insert(self, row: dict) -> None:
        await self.track(
            event_type="message_inserted",
            actor="storage",
            data={
                "message_id": row.get("id"),
                "channel_id": row.get("channel_id"),
                "is_ai_response": bool(row.get("is_ai_response")),
                "content_summary": str(row.get("content", ""))[:100],
            },
        )

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        await self._storage.save_trace_event(trace_event)
