"""Tests for ChatSession."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from nativeiq.assistant import NO_INFORMATION_RESPONSE, AssistantResponder
from nativeiq.chat import SessionState
from nativeiq.errors import AssistantError, FetchError, SendError, SubscriptionError
from nativeiq.models import AssistantReply, ChatMember, ChatTurn, Message


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run up to their next real suspension."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def failing_responder(status=500):
    """AssistantResponder whose endpoint always fails."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status,
            json={"error": {"code": "PROVIDER_ERROR", "message": "upstream down", "details": {}}},
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AssistantResponder(client, "http://assistant.test/api/chat", user_id="user_alice")


class TestOpenOrganization:
    """Tests for loading an organization."""

    async def test_selects_team_channel_by_default(self, make_session, org):
        """Test that the first team channel is selected."""
        session = make_session()
        assert session.state is SessionState.NO_CHANNEL_SELECTED

        channels = await session.open_organization(org.id)

        assert len(channels) == 3
        assert session.current_channel.id == "ch_team"
        assert session.state is SessionState.CHANNEL_SELECTED
        assert {m.id for m in session.members} == {"user_alice", "user_bob"}
        assert session.team_channel.id == "ch_team"
        assert session.assistant_channel.id == "ch_native"

    async def test_loads_history(self, make_session, storage, org):
        """Test that the default channel's history is loaded."""
        await storage.insert_message("ch_team", "user_bob", "Morning")

        session = make_session()
        await session.open_organization(org.id)

        assert [m.content for m in session.messages] == ["Morning"]
        assert not session.loading

    async def test_channel_fetch_failure_recorded(self, make_session, org, monkeypatch):
        """Test that a channel list failure leaves no selection and an error."""
        session = make_session()
        monkeypatch.setattr(
            session._directory, "list_channels", AsyncMock(side_effect=FetchError("db down"))
        )

        channels = await session.open_organization(org.id)

        assert channels == []
        assert session.current_channel is None
        assert isinstance(session.error, FetchError)

    async def test_empty_organization(self, make_session, org):
        """Test an organization without channels."""
        session = make_session()
        await session.open_organization("org_empty")

        assert session.current_channel is None
        assert session.state is SessionState.NO_CHANNEL_SELECTED

    async def test_switch_to_empty_organization_clears_selection(
        self, make_session, realtime, storage, org
    ):
        """Test that opening an organization without channels drops the old channel."""
        await storage.insert_message("ch_team", "user_bob", "Morning")
        session = make_session()
        await session.open_organization(org.id)
        assert session.current_channel.id == "ch_team"

        await session.open_organization("org_empty")

        assert session.current_channel is None
        assert session.state is SessionState.NO_CHANNEL_SELECTED
        assert session.messages == []
        assert realtime.active_subscriptions("messages") == []

        await storage.insert_message("ch_team", "user_bob", "Still here?")
        assert session.messages == []


class TestSelectChannel:
    """Tests for channel switching."""

    async def test_single_subscription_for_latest_channel(self, make_session, realtime, org):
        """Test that rapid switching leaves one subscription on the last channel."""
        session = make_session()
        for channel in (org.team, org.assistant, org.direct, org.team, org.assistant):
            await session.select_channel(channel)

        active = realtime.active_subscriptions("messages")
        assert len(active) == 1
        assert active[0].filters == {"channel_id": "ch_native"}
        assert session._subscriptions.channel_id == "ch_native"

    async def test_concurrent_selects_single_subscription(self, make_session, realtime, org):
        """Test overlapping selects leave one subscription on the last one."""
        session = make_session()
        await asyncio.gather(
            session.select_channel(org.team),
            session.select_channel(org.assistant),
            session.select_channel(org.direct),
        )

        active = realtime.active_subscriptions("messages")
        assert len(active) == 1
        assert active[0].filters == {"channel_id": session.current_channel.id}

    async def test_resets_buffer(self, make_session, storage, org):
        """Test that switching channels replaces the buffer."""
        await storage.insert_message("ch_team", "user_bob", "Team message")
        await storage.insert_message("ch_dm", "user_bob", "DM message")
        session = make_session()

        await session.select_channel(org.team)
        await session.select_channel(org.direct)

        assert [m.content for m in session.messages] == ["DM message"]

    async def test_stale_fetch_discarded_when_older_resolves_last(
        self, make_session, storage, org
    ):
        """Test the stale-fetch race: A's history arrives after B's."""
        await storage.insert_message("ch_team", "user_bob", "Team message")
        await storage.insert_message("ch_native", "user_alice", "Native message")
        session = make_session()

        gates = {"ch_team": asyncio.Event(), "ch_native": asyncio.Event()}
        original = session._store.fetch_history

        async def gated(channel_id, **kwargs):
            await gates[channel_id].wait()
            return await original(channel_id, **kwargs)

        session._store.fetch_history = gated

        task_a = asyncio.create_task(session.select_channel(org.team))
        await settle()
        task_b = asyncio.create_task(session.select_channel(org.assistant))
        await settle()

        gates["ch_native"].set()
        await task_b
        gates["ch_team"].set()
        await task_a

        assert session.current_channel.id == "ch_native"
        assert [m.content for m in session.messages] == ["Native message"]
        assert session._subscriptions.channel_id == "ch_native"
        assert not session.loading

    async def test_stale_fetch_discarded_when_older_resolves_first(
        self, make_session, storage, org, realtime
    ):
        """Test the stale-fetch race: A's history arrives before B's."""
        await storage.insert_message("ch_team", "user_bob", "Team message")
        await storage.insert_message("ch_native", "user_alice", "Native message")
        session = make_session()

        gates = {"ch_team": asyncio.Event(), "ch_native": asyncio.Event()}
        original = session._store.fetch_history

        async def gated(channel_id, **kwargs):
            await gates[channel_id].wait()
            return await original(channel_id, **kwargs)

        session._store.fetch_history = gated

        task_a = asyncio.create_task(session.select_channel(org.team))
        await settle()
        task_b = asyncio.create_task(session.select_channel(org.assistant))
        await settle()

        gates["ch_team"].set()
        await task_a
        assert session.messages == []
        assert session.loading

        gates["ch_native"].set()
        await task_b

        assert [m.content for m in session.messages] == ["Native message"]
        active = realtime.active_subscriptions("messages")
        assert len(active) == 1
        assert active[0].filters == {"channel_id": "ch_native"}

    async def test_fetch_failure_records_error_and_keeps_channel(
        self, make_session, org, realtime
    ):
        """Test that a history failure leaves an empty buffer and an error."""
        session = make_session()
        session._store.fetch_history = AsyncMock(side_effect=FetchError("timeout"))

        await session.select_channel(org.team)

        assert session.current_channel.id == "ch_team"
        assert session.messages == []
        assert isinstance(session.error, FetchError)
        assert not session.loading
        assert len(realtime.active_subscriptions("messages")) == 1

    async def test_subscription_failure_recorded(self, make_session, org):
        """Test that a subscribe failure is surfaced on the session."""
        session = make_session()
        session._subscriptions.subscribe = AsyncMock(side_effect=SubscriptionError("closed"))

        await session.select_channel(org.team)

        assert isinstance(session.error, SubscriptionError)

    async def test_realtime_message_appended(self, make_session, storage, org):
        """Test that messages from other users arrive through realtime."""
        received = []
        session = make_session(on_message=received.append)
        await session.select_channel(org.team)

        await storage.insert_message("ch_team", "user_bob", "Hi from Bob")

        assert [m.content for m in session.messages] == ["Hi from Bob"]
        assert session.messages[0].author.full_name == "Bob Stone"
        assert [m.content for m in received] == ["Hi from Bob"]

    async def test_other_channel_messages_not_appended(self, make_session, storage, org):
        """Test that the buffer only holds the selected channel's messages."""
        session = make_session()
        await session.select_channel(org.team)

        await storage.insert_message("ch_dm", "user_bob", "Private")
        assert session.messages == []

    async def test_close_tears_down(self, make_session, realtime, org):
        """Test that closing the session removes its subscription."""
        session = make_session()
        await session.select_channel(org.team)
        await session.close()

        assert realtime.active_subscriptions() == []


class TestSendMessage:
    """Tests for sending messages."""

    async def test_echo_deduplicated(self, make_session, org):
        """Test that the realtime echo of a sent message is not duplicated."""
        received = []
        session = make_session(on_message=received.append)
        await session.select_channel(org.team)

        message = await session.send_message("Hello team")

        assert [m.id for m in session.messages] == [message.id]
        assert len(received) == 1

    async def test_duplicate_delivery_ignored(self, make_session, org):
        """Test that a second delivery of the same id is a no-op."""
        session = make_session()
        await session.select_channel(org.team)
        message = await session.send_message("Hello team")

        await session._receive(message)
        await session._receive(message)

        assert len(session.messages) == 1

    async def test_no_channel_is_noop(self, make_session, mock_responder):
        """Test sending without a selected channel."""
        session = make_session()
        assert await session.send_message("Hello") is None
        mock_responder.respond.assert_not_awaited()

    async def test_blank_content_is_noop(self, make_session, org):
        """Test that whitespace-only content is not sent."""
        session = make_session()
        await session.select_channel(org.team)

        assert await session.send_message("   ") is None
        assert session.messages == []

    async def test_send_failure(self, make_session, org):
        """Test that a failed insert raises SendError and records it."""
        session = make_session()
        await session.select_channel(org.team)
        session._store.append_message = AsyncMock(side_effect=SendError("denied"))

        with pytest.raises(SendError):
            await session.send_message("Hello")

        assert isinstance(session.error, SendError)
        assert session.error.retryable
        assert not session.sending
        assert session.messages == []

    async def test_team_without_mention_does_not_invoke(self, make_session, org, mock_responder):
        """Test that plain team messages skip the assistant."""
        session = make_session()
        await session.select_channel(org.team)

        await session.send_message("Hello team")
        mock_responder.respond.assert_not_awaited()

    async def test_team_with_mention_invokes_once(self, make_session, org, mock_responder):
        """Test that a mention in a team channel asks the assistant once."""
        session = make_session()
        await session.select_channel(org.team)

        await session.send_message("@Native summarize the week")

        mock_responder.respond.assert_awaited_once()
        assert [m.role for m in session.messages] == ["user", "assistant"]
        assert session.messages[1].content == "Test response"

    async def test_assistant_channel_always_invokes(self, make_session, org, mock_responder):
        """Test that any message in the assistant channel is answered."""
        session = make_session()
        await session.select_channel(org.assistant)

        await session.send_message("hello")

        mock_responder.respond.assert_awaited_once()
        assert session.is_assistant_channel
        assert [m.role for m in session.messages] == ["user", "assistant"]

    async def test_direct_channel_never_invokes(self, make_session, org, mock_responder):
        """Test that DMs never ask the assistant, even with a mention."""
        session = make_session()
        await session.select_channel(org.direct)

        await session.send_message("@native hello")
        mock_responder.respond.assert_not_awaited()

    async def test_tracks_message_sent(self, make_session, tracker, storage, org):
        """Test the message_sent trace event."""
        session = make_session(tracker=tracker)
        await session.select_channel(org.team)
        await session.send_message("Hello")

        events = await storage.get_trace_events(event_types=["message_sent"])
        assert len(events) == 1
        assert events[0].actor == "session:user_alice"
        assert events[0].data["organization_id"] == org.id

        scoped = await storage.get_trace_events(organization_id=org.id, channel_id="ch_team")
        assert {e.event_type for e in scoped} >= {"channel_selected", "message_sent"}


class TestAssistant:
    """Tests for assistant invocation."""

    async def test_prompt_excluded_from_history(self, make_session, org, mock_responder):
        """Test the history window sent with the prompt."""
        session = make_session()
        await session.select_channel(org.assistant)

        await session.send_message("hello")
        first_prompt, first_history = mock_responder.respond.await_args.args
        assert first_prompt == "hello"
        assert first_history == []

        await session.send_message("what about revenue?")
        _, history = mock_responder.respond.await_args.args
        assert history == [
            ChatTurn(role="user", content="hello"),
            ChatTurn(role="assistant", content="Test response"),
        ]

    async def test_history_window_bounded(self, make_session, storage, org, mock_responder):
        """Test that at most history_window prior messages are sent."""
        from nativeiq.config import ChatSettings

        for i in range(15):
            await storage.insert_message("ch_native", "user_alice", f"Message {i}")
        session = make_session(settings=ChatSettings(history_window=4))
        await session.select_channel(org.assistant)

        await session.send_message("latest")
        _, history = mock_responder.respond.await_args.args
        assert [turn.content for turn in history] == [
            "Message 11",
            "Message 12",
            "Message 13",
            "Message 14",
        ]

    async def test_endpoint_failure_appends_fallback(self, make_session, org):
        """Test that a failing endpoint yields exactly one fallback answer."""
        session = make_session(responder=failing_responder())
        await session.select_channel(org.assistant)

        await session.send_message("What is our total revenue?")

        assistant_messages = [m for m in session.messages if m.role == "assistant"]
        assert len(assistant_messages) == 1
        assert assistant_messages[0].content.startswith("Total revenue is $125,430")
        assert assistant_messages[0].metadata == {"attempt": 1, "fallback": True}
        assert not session.assistant_responding
        assert isinstance(session.error, AssistantError)
        assert session.error.code == "PROVIDER_ERROR"

    async def test_unknown_prompt_fallback(self, make_session, org):
        """Test the no-information fallback."""
        session = make_session(responder=failing_responder())
        await session.select_channel(org.assistant)

        await session.send_message("tell me a joke")

        assert session.messages[-1].content == NO_INFORMATION_RESPONSE

    async def test_responder_exception_becomes_fallback(self, make_session, org):
        """Test that an unexpected responder error still yields one answer."""
        responder = AsyncMock()
        responder.respond.side_effect = RuntimeError("boom")
        session = make_session(responder=responder)
        await session.select_channel(org.assistant)

        await session.send_message("revenue")

        assert [m.role for m in session.messages] == ["user", "assistant"]
        assert isinstance(session.error, AssistantError)
        assert not session.assistant_responding

    async def test_fallback_tracked(self, make_session, tracker, storage, org):
        """Test the assistant_fallback trace event."""
        session = make_session(responder=failing_responder(), tracker=tracker)
        await session.select_channel(org.assistant)
        await session.send_message("revenue")

        events = await storage.get_trace_events(event_types=["assistant_fallback"])
        assert len(events) == 1

    async def test_responding_flag_during_call(self, make_session, org):
        """Test that assistant_responding is set only while waiting."""
        session = make_session()
        await session.select_channel(org.assistant)
        release = asyncio.Event()

        async def slow(prompt, history):
            await release.wait()
            return AssistantReply(content="Done")

        session._responder.respond = slow
        task = asyncio.create_task(session.request_assistant("status?"))
        await settle()
        assert session.assistant_responding

        release.set()
        await task
        assert not session.assistant_responding

    async def test_overlapping_requests_answered_in_order(self, make_session, org):
        """Test FIFO handling of concurrent assistant requests."""
        session = make_session()
        await session.select_channel(org.assistant)
        calls = []

        async def respond(prompt, history):
            calls.append(prompt)
            await asyncio.sleep(0.01 if prompt == "first" else 0)
            return AssistantReply(content=f"answer to {prompt}")

        session._responder.respond = respond
        first = asyncio.create_task(session.request_assistant("first"))
        second = asyncio.create_task(session.request_assistant("second"))
        await settle()
        assert session.assistant_responding

        await first
        assert session.assistant_responding
        await second

        assert calls == ["first", "second"]
        assert [m.content for m in session.messages] == ["answer to first", "answer to second"]
        assert not session.assistant_responding

    async def test_insert_failure_after_answer(self, make_session, org):
        """Test that a failed assistant insert records SendError."""
        session = make_session()
        await session.select_channel(org.assistant)
        session._store.append_message = AsyncMock(side_effect=SendError("denied"))

        assert await session.request_assistant("hello") is None
        assert isinstance(session.error, SendError)
        assert not session.assistant_responding


class TestRetryAndRegenerate:
    """Tests for retrying assistant requests."""

    async def test_retry_without_prompt_is_noop(self, make_session, org, mock_responder):
        """Test retry before any assistant request."""
        session = make_session()
        await session.select_channel(org.assistant)

        assert await session.retry_assistant() is None
        assert session.messages == []
        mock_responder.respond.assert_not_awaited()

    async def test_retry_reissues_last_prompt(self, make_session, org, mock_responder):
        """Test that retry re-asks the last prompt with a new attempt."""
        session = make_session()
        await session.select_channel(org.assistant)
        await session.send_message("revenue?")

        message = await session.retry_assistant()

        assert mock_responder.respond.await_count == 2
        assert mock_responder.respond.await_args.args[0] == "revenue?"
        assert message.metadata["attempt"] == 2
        assert session.last_command.attempt == 2

    async def test_retry_after_fallback_drops_prompt_and_fallback(
        self, make_session, org
    ):
        """Test that a retry sends the history before the failed prompt only."""
        responder = AsyncMock()
        responder.respond.side_effect = [
            AssistantReply(content="Hi Alice"),
            RuntimeError("boom"),
            AssistantReply(content="Revenue is up"),
        ]
        session = make_session(responder=responder)
        await session.select_channel(org.assistant)
        await session.send_message("hello")
        await session.send_message("revenue please")
        assert session.messages[-1].metadata == {"attempt": 1, "fallback": True}

        await session.retry_assistant()

        prompt, history = responder.respond.await_args.args
        assert prompt == "revenue please"
        assert history == [
            ChatTurn(role="user", content="hello"),
            ChatTurn(role="assistant", content="Hi Alice"),
        ]
        assert session.messages[-1].content == "Revenue is up"

    async def test_regenerate_uses_preceding_user_message(
        self, make_session, org, mock_responder
    ):
        """Test regenerating an answer re-asks its question."""
        session = make_session()
        await session.select_channel(org.assistant)
        await session.send_message("first question")
        await session.send_message("second question")
        first_answer = session.messages[1]

        await session.regenerate(first_answer)

        assert mock_responder.respond.await_args.args[0] == "first question"

    async def test_regenerate_without_any_prompt(self, make_session, org, mock_responder):
        """Test regenerating with no user message and no prior request."""
        session = make_session()
        await session.select_channel(org.assistant)
        orphan = Message(
            id="orphan",
            channel_id="ch_native",
            author_id=None,
            content="Welcome!",
            is_ai_response=True,
            created_at=datetime.now(timezone.utc),
        )

        assert await session.regenerate(orphan) is None
        mock_responder.respond.assert_not_awaited()


class TestLoadOlder:
    """Tests for paging older history."""

    async def test_prepends_older_page(self, make_session, storage, org):
        """Test loading the page before the oldest buffered message."""
        from nativeiq.config import ChatSettings

        for i in range(5):
            await storage.insert_message("ch_team", "user_bob", f"Message {i}")
        session = make_session(settings=ChatSettings(history_limit=2))
        await session.select_channel(org.team)
        assert [m.content for m in session.messages] == ["Message 3", "Message 4"]

        older = await session.load_older_messages()

        assert [m.content for m in older] == ["Message 1", "Message 2"]
        assert [m.content for m in session.messages] == [
            "Message 1",
            "Message 2",
            "Message 3",
            "Message 4",
        ]

    async def test_empty_buffer(self, make_session, org):
        """Test that nothing is loaded for an empty channel."""
        session = make_session()
        await session.select_channel(org.team)
        assert await session.load_older_messages() == []


class TestDirectChannels:
    """Tests for opening DMs from the session."""

    async def test_open_direct_channel_selects_it(self, make_session, org):
        """Test opening a DM with a new member."""
        session = make_session()
        await session.open_organization(org.id)
        carol = ChatMember(id="user_carol", full_name="Carol", avatar_url=None)

        channel = await session.open_direct_channel(carol)

        assert session.current_channel.id == channel.id
        assert channel in session.channels

    async def test_open_existing_direct_channel(self, make_session, org):
        """Test that the existing DM is reused."""
        session = make_session()
        await session.open_organization(org.id)
        bob = next(m for m in session.members if m.id == "user_bob")

        channel = await session.open_direct_channel(bob)

        assert channel.id == "ch_dm"
        assert len(session.channels) == 3


class TestSnapshot:
    """Tests for the serializable session view."""

    async def test_snapshot(self, make_session, org):
        """Test snapshot contents after sending."""
        session = make_session(user_id="user_bob")
        await session.open_organization(org.id)
        await session.send_message("Hi")

        snapshot = session.snapshot()
        assert snapshot["state"] == "channel_selected"
        assert snapshot["current_channel_id"] == "ch_team"
        dm = next(c for c in snapshot["channels"] if c["id"] == "ch_dm")
        assert dm["display_name"] == "Alice Moreau"
        assert snapshot["messages"][0]["content"] == "Hi"
        assert snapshot["error"] is None
        assert snapshot["can_retry"] is False

    async def test_dismiss_error(self, make_session, org):
        """Test clearing the surfaced error."""
        session = make_session()
        session.error = FetchError("x")
        session.dismiss_error()
        assert session.error is None
