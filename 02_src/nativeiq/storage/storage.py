"""SQLite storage implementation."""

import json
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import (
    Author,
    Channel,
    ChannelType,
    ChatMember,
    ContextRecord,
    DirectMetadata,
    Insight,
    Invite,
    Message,
    Profile,
    Task,
    TraceEvent,
    dump_channel_metadata,
    parse_channel_metadata,
    parse_timestamp,
)
from ..realtime.hub import IRealtimeHub


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class IStorage(Protocol):
    """Backend storage the chat core depends on (profiles, channels, messages)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Profiles
    async def save_profile(self, profile: Profile) -> None:
        """Save a profile."""
        ...

    async def get_profile(self, user_id: str) -> Profile | None:
        """Get a profile by ID."""
        ...

    async def get_author(self, author_id: str) -> Author | None:
        """Get the author identity joined onto messages."""
        ...

    async def list_members(self, organization_id: str) -> list[ChatMember]:
        """Get the member roster of an organization."""
        ...

    # Channels
    async def save_channel(self, channel: Channel) -> Channel:
        """Save a channel. Direct channels are unique per participant pair."""
        ...

    async def get_channel(self, channel_id: str) -> Channel | None:
        """Get a channel by ID."""
        ...

    async def list_channels(self, organization_id: str) -> list[Channel]:
        """Get channels of an organization, oldest first."""
        ...

    # Messages
    async def insert_message(
        self,
        channel_id: str,
        author_id: str | None,
        content: str,
        is_ai_response: bool = False,
        metadata: dict | None = None,
    ) -> Message:
        """Insert a message and broadcast the realtime insert event."""
        ...

    async def get_messages(
        self, channel_id: str, limit: int = 50, before: datetime | None = None
    ) -> list[Message]:
        """Get the newest `limit` messages (before a timestamp), oldest first."""
        ...

    # Context records
    async def save_context_record(self, record: ContextRecord) -> None:
        """Save an organization context record."""
        ...

    async def list_context_records(
        self, organization_id: str, limit: int = 50
    ) -> list[ContextRecord]:
        """Get the most recently updated context records."""
        ...

    # Invites
    async def save_invite(self, invite: Invite) -> None:
        """Save an invite."""
        ...

    async def get_latest_invite(self, organization_id: str, email: str) -> Invite | None:
        """Get the newest invite for an address."""
        ...

    async def mark_invite_sent(self, invite_id: str, sent_at: datetime) -> None:
        """Record that the invite email went out."""
        ...

    # Insights and tasks
    async def save_insight(self, insight: Insight) -> None:
        """Save an insight."""
        ...

    async def list_insights(
        self,
        organization_id: str,
        insight_type: str | None = None,
        impact: str | None = None,
    ) -> list[Insight]:
        """Get an organization's insights, newest first."""
        ...

    async def save_task(self, task: Task) -> None:
        """Save a task."""
        ...

    async def list_tasks(
        self,
        organization_id: str,
        assignee: str | None = None,
        state: str | None = None,
    ) -> list[Task]:
        """Get an organization's tasks, newest first."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        organization_id: str | None = None,
        channel_id: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events filtered by columns and by ids in the event data."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        realtime: IRealtimeHub | None = None,
    ):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._realtime = realtime
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Profiles
    async def save_profile(self, profile: Profile) -> None:
        """Save a profile."""
        conn = self._connection()
        await conn.execute(
            """
            INSERT OR REPLACE INTO profiles
            (id, full_name, avatar_url, organization_id, role, email)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                profile.id,
                profile.full_name,
                profile.avatar_url,
                profile.organization_id,
                profile.role.value,
                profile.email,
            ),
        )
        await conn.commit()

    async def get_profile(self, user_id: str) -> Profile | None:
        """Get a profile by ID."""
        conn = self._connection()
        cursor = await conn.execute(
            """
            SELECT id, full_name, avatar_url, organization_id, role, email
            FROM profiles
            WHERE id = ?
            """,
            (user_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return Profile(**dict(row))

    async def get_author(self, author_id: str) -> Author | None:
        """Get the author identity joined onto messages."""
        conn = self._connection()
        cursor = await conn.execute(
            "SELECT id, full_name, avatar_url FROM profiles WHERE id = ?",
            (author_id,),
        )
        row = await cursor.fetchone()
        return Author(**dict(row)) if row else None

    async def list_members(self, organization_id: str) -> list[ChatMember]:
        """Get the member roster of an organization."""
        conn = self._connection()
        cursor = await conn.execute(
            """
            SELECT id, full_name, avatar_url, role
            FROM profiles
            WHERE organization_id = ?
            ORDER BY full_name ASC
            """,
            (organization_id,),
        )
        rows = await cursor.fetchall()
        return [ChatMember(**dict(row)) for row in rows]

    # Channels
    def _channel_from_row(self, row: aiosqlite.Row) -> Channel:
        channel_type = ChannelType(row["type"])
        return Channel(
            id=row["id"],
            organization_id=row["organization_id"],
            name=row["name"],
            description=row["description"],
            type=channel_type,
            created_at=parse_timestamp(row["created_at"]),
            metadata=parse_channel_metadata(channel_type, json.loads(row["metadata"])),
        )

    async def save_channel(self, channel: Channel) -> Channel:
        """Save a channel. Direct channels are unique per participant pair."""
        conn = self._connection()
        participant_key = None
        if isinstance(channel.metadata, DirectMetadata):
            participant_key = channel.metadata.participant_key

        values = (
            channel.id or str(uuid.uuid4()),
            channel.organization_id,
            channel.name,
            channel.description,
            channel.type.value,
            _iso(channel.created_at),
            json.dumps(dump_channel_metadata(channel.metadata)),
            participant_key,
        )

        if participant_key is None:
            await conn.execute(
                """
                INSERT OR REPLACE INTO channels
                (id, organization_id, name, description, type, created_at, metadata, participant_key)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values,
            )
            await conn.commit()
            return channel

        # An existing DM for the same pair wins
        await conn.execute(
            """
            INSERT OR IGNORE INTO channels
            (id, organization_id, name, description, type, created_at, metadata, participant_key)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            values,
        )
        await conn.commit()
        cursor = await conn.execute(
            "SELECT * FROM channels WHERE organization_id = ? AND participant_key = ?",
            (channel.organization_id, participant_key),
        )
        row = await cursor.fetchone()
        return self._channel_from_row(row)

    async def get_channel(self, channel_id: str) -> Channel | None:
        """Get a channel by ID."""
        conn = self._connection()
        cursor = await conn.execute("SELECT * FROM channels WHERE id = ?", (channel_id,))
        row = await cursor.fetchone()
        return self._channel_from_row(row) if row else None

    async def list_channels(self, organization_id: str) -> list[Channel]:
        """Get channels of an organization, oldest first."""
        conn = self._connection()
        cursor = await conn.execute(
            """
            SELECT * FROM channels
            WHERE organization_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (organization_id,),
        )
        rows = await cursor.fetchall()
        return [self._channel_from_row(row) for row in rows]

    # Messages
    async def insert_message(
        self,
        channel_id: str,
        author_id: str | None,
        content: str,
        is_ai_response: bool = False,
        metadata: dict | None = None,
    ) -> Message:
        """Insert a message and broadcast the realtime insert event."""
        conn = self._connection()
        row = {
            "id": str(uuid.uuid4()),
            "channel_id": channel_id,
            "author_id": author_id,
            "content": content,
            "is_ai_response": bool(is_ai_response),
            "metadata": metadata or {},
            "created_at": _now().isoformat(),
        }

        await conn.execute(
            """
            INSERT INTO messages
            (id, channel_id, author_id, content, is_ai_response, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row["id"],
                row["channel_id"],
                row["author_id"],
                row["content"],
                int(row["is_ai_response"]),
                json.dumps(row["metadata"]),
                row["created_at"],
            ),
        )
        await conn.commit()

        author = await self.get_author(author_id) if author_id else None
        message = Message.from_row(row, author=author)

        # Row-level insert trigger: the payload carries no joined author
        if self._realtime:
            await self._realtime.publish_insert("messages", row)

        return message

    async def get_messages(
        self, channel_id: str, limit: int = 50, before: datetime | None = None
    ) -> list[Message]:
        """Get the newest `limit` messages (before a timestamp), oldest first."""
        conn = self._connection()

        conditions = ["m.channel_id = ?"]
        params: list = [channel_id]
        if before:
            conditions.append("m.created_at < ?")
            params.append(_iso(before))
        params.append(limit)

        cursor = await conn.execute(
            f"""
            SELECT m.id, m.channel_id, m.author_id, m.content, m.is_ai_response,
                   m.metadata, m.created_at,
                   p.full_name AS author_name, p.avatar_url AS author_avatar
            FROM messages m
            LEFT JOIN profiles p ON p.id = m.author_id
            WHERE {' AND '.join(conditions)}
            ORDER BY m.created_at DESC, m.rowid DESC
            LIMIT ?
            """,
            params,
        )
        rows = await cursor.fetchall()

        messages = []
        for row in reversed(rows):
            author = None
            if row["author_id"]:
                author = Author(
                    id=row["author_id"],
                    full_name=row["author_name"],
                    avatar_url=row["author_avatar"],
                )
            messages.append(Message.from_row(dict(row), author=author))
        return messages

    # Context records
    async def save_context_record(self, record: ContextRecord) -> None:
        """Save an organization context record."""
        conn = self._connection()
        await conn.execute(
            """
            INSERT OR REPLACE INTO context_records
            (id, organization_id, title, content, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                record.id or str(uuid.uuid4()),
                record.organization_id,
                record.title,
                record.content,
                _iso(record.updated_at),
            ),
        )
        await conn.commit()

    async def list_context_records(
        self, organization_id: str, limit: int = 50
    ) -> list[ContextRecord]:
        """Get the most recently updated context records."""
        conn = self._connection()
        cursor = await conn.execute(
            """
            SELECT id, organization_id, title, content, updated_at
            FROM context_records
            WHERE organization_id = ?
            ORDER BY updated_at DESC
            LIMIT ?
            """,
            (organization_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            ContextRecord(
                id=row["id"],
                organization_id=row["organization_id"],
                title=row["title"],
                content=row["content"],
                updated_at=parse_timestamp(row["updated_at"]),
            )
            for row in rows
        ]

    # Invites
    def _invite_from_row(self, row: aiosqlite.Row) -> Invite:
        return Invite(
            id=row["id"],
            organization_id=row["organization_id"],
            email=row["email"],
            invite_code=row["invite_code"],
            invited_by=row["invited_by"],
            created_at=parse_timestamp(row["created_at"]),
            expires_at=parse_timestamp(row["expires_at"]),
            sent_at=parse_timestamp(row["sent_at"]) if row["sent_at"] else None,
        )

    async def save_invite(self, invite: Invite) -> None:
        """Save an invite."""
        conn = self._connection()
        await conn.execute(
            """
            INSERT OR REPLACE INTO invites
            (id, organization_id, email, invite_code, invited_by, created_at, expires_at, sent_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                invite.id or str(uuid.uuid4()),
                invite.organization_id,
                invite.email.lower(),
                invite.invite_code,
                invite.invited_by,
                _iso(invite.created_at),
                _iso(invite.expires_at),
                _iso(invite.sent_at),
            ),
        )
        await conn.commit()

    async def get_latest_invite(self, organization_id: str, email: str) -> Invite | None:
        """Get the newest invite for an address."""
        conn = self._connection()
        cursor = await conn.execute(
            """
            SELECT * FROM invites
            WHERE organization_id = ? AND email = ?
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (organization_id, email.lower()),
        )
        row = await cursor.fetchone()
        return self._invite_from_row(row) if row else None

    async def mark_invite_sent(self, invite_id: str, sent_at: datetime) -> None:
        """Record that the invite email went out."""
        conn = self._connection()
        await conn.execute(
            "UPDATE invites SET sent_at = ? WHERE id = ?",
            (_iso(sent_at), invite_id),
        )
        await conn.commit()

    # Insights and tasks
    async def save_insight(self, insight: Insight) -> None:
        """Save an insight."""
        conn = self._connection()
        await conn.execute(
            """
            INSERT OR REPLACE INTO insights
            (id, organization_id, title, description, type, impact, sources, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                insight.id or str(uuid.uuid4()),
                insight.organization_id,
                insight.title,
                insight.description,
                insight.type,
                insight.impact,
                json.dumps([asdict(s) for s in insight.sources]),
                _iso(insight.created_at),
            ),
        )
        await conn.commit()

    async def list_insights(
        self,
        organization_id: str,
        insight_type: str | None = None,
        impact: str | None = None,
    ) -> list[Insight]:
        """Get an organization's insights, newest first."""
        conn = self._connection()

        conditions = ["organization_id = ?"]
        params: list = [organization_id]
        if insight_type:
            conditions.append("type = ?")
            params.append(insight_type)
        if impact:
            conditions.append("impact = ?")
            params.append(impact)

        cursor = await conn.execute(
            f"""
            SELECT id, organization_id, title, description, type, impact, sources, created_at
            FROM insights
            WHERE {' AND '.join(conditions)}
            ORDER BY created_at DESC
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [
            Insight(
                id=row["id"],
                organization_id=row["organization_id"],
                title=row["title"],
                description=row["description"],
                type=row["type"],
                impact=row["impact"],
                sources=json.loads(row["sources"]),
                created_at=parse_timestamp(row["created_at"]),
            )
            for row in rows
        ]

    async def save_task(self, task: Task) -> None:
        """Save a task."""
        conn = self._connection()
        await conn.execute(
            """
            INSERT OR REPLACE INTO tasks
            (id, organization_id, title, description, assignee, state, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id or str(uuid.uuid4()),
                task.organization_id,
                task.title,
                task.description,
                task.assignee,
                task.state,
                _iso(task.created_at),
            ),
        )
        await conn.commit()

    async def list_tasks(
        self,
        organization_id: str,
        assignee: str | None = None,
        state: str | None = None,
    ) -> list[Task]:
        """Get an organization's tasks, newest first."""
        conn = self._connection()

        conditions = ["organization_id = ?"]
        params: list = [organization_id]
        if assignee:
            conditions.append("assignee = ?")
            params.append(assignee)
        if state:
            conditions.append("state = ?")
            params.append(state)

        cursor = await conn.execute(
            f"""
            SELECT id, organization_id, title, description, assignee, state, created_at
            FROM tasks
            WHERE {' AND '.join(conditions)}
            ORDER BY created_at DESC
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [
            Task(
                id=row["id"],
                organization_id=row["organization_id"],
                title=row["title"],
                description=row["description"],
                assignee=row["assignee"],
                state=row["state"],
                created_at=parse_timestamp(row["created_at"]),
            )
            for row in rows
        ]

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._connection()
        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, default=str),
                _iso(event.timestamp),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        organization_id: str | None = None,
        channel_id: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters, newest first."""
        conn = self._connection()

        conditions = []
        params: list = []

        if after:
            conditions.append("timestamp > ?")
            params.append(_iso(parse_timestamp(after)))
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)
        if organization_id:
            conditions.append("json_extract(data, '$.organization_id') = ?")
            params.append(organization_id)
        if channel_id:
            conditions.append("json_extract(data, '$.channel_id') = ?")
            params.append(channel_id)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row["id"],
                event_type=row["event_type"],
                actor=row["actor"],
                data=json.loads(row["data"]),
                timestamp=parse_timestamp(row["timestamp"]),
            )
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._connection()

        tables = [
            "messages",
            "channels",
            "context_records",
            "invites",
            "insights",
            "tasks",
            "trace_events",
            "profiles",
        ]

        for table in tables:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
