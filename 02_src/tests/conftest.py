"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

ORG_ID = "org_1"
BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def realtime():
    """Create an in-memory realtime hub."""
    from nativeiq.realtime import RealtimeHub

    return RealtimeHub()


@pytest_asyncio.fixture
async def storage(realtime):
    """Create in-memory storage wired to the realtime hub."""
    from nativeiq.storage import Storage

    st = Storage(":memory:", realtime=realtime)
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def tracker(storage, realtime):
    """Create Tracker with storage and realtime hub."""
    from nativeiq.tracker import Tracker

    return Tracker(storage, realtime)


@pytest_asyncio.fixture
async def org(storage):
    """Seed an organization with two members and one channel of each type."""
    from nativeiq.models import (
        Channel,
        ChannelType,
        DirectMetadata,
        MemberRole,
        Profile,
    )

    alice = Profile(
        id="user_alice",
        full_name="Alice Moreau",
        organization_id=ORG_ID,
        role=MemberRole.OWNER,
        email="alice@example.com",
    )
    bob = Profile(
        id="user_bob",
        full_name="Bob Stone",
        organization_id=ORG_ID,
        role=MemberRole.MEMBER,
        email="bob@example.com",
    )
    for profile in (alice, bob):
        await storage.save_profile(profile)

    team = Channel(
        id="ch_team",
        organization_id=ORG_ID,
        name="general",
        type=ChannelType.TEAM,
        created_at=BASE_TIME,
    )
    assistant = Channel(
        id="ch_native",
        organization_id=ORG_ID,
        name="Native",
        type=ChannelType.AI_ASSISTANT,
        created_at=BASE_TIME + timedelta(minutes=1),
    )
    direct = Channel(
        id="ch_dm",
        organization_id=ORG_ID,
        name="Alice & Bob",
        type=ChannelType.DIRECT,
        created_at=BASE_TIME + timedelta(minutes=2),
        metadata=DirectMetadata(
            participants=(alice.id, bob.id),
            participant_names={alice.id: alice.full_name, bob.id: bob.full_name},
        ),
    )
    for channel in (team, assistant, direct):
        await storage.save_channel(channel)

    return SimpleNamespace(
        id=ORG_ID,
        alice=alice,
        bob=bob,
        team=team,
        assistant=assistant,
        direct=direct,
    )


@pytest.fixture
def mock_responder():
    """Create mock assistant responder."""
    from nativeiq.models import AssistantReply

    responder = Mock()
    responder.respond = AsyncMock(return_value=AssistantReply(content="Test response"))
    return responder


@pytest.fixture
def mock_llm():
    """Create mock LLM provider."""
    from nativeiq.llm import LLMCompletion

    llm = Mock()
    llm.complete = AsyncMock(
        return_value=LLMCompletion(text="Test response", prompt_tokens=12, completion_tokens=4)
    )
    return llm


@pytest.fixture
def make_session(storage, realtime, mock_responder):
    """Factory for chat sessions bound to the shared storage and hub."""
    from nativeiq.chat import ChannelDirectory, ChatSession, MessageStore
    from nativeiq.realtime import RealtimeSubscriptionManager

    def factory(user_id="user_alice", responder=None, **kwargs):
        return ChatSession(
            user_id=user_id,
            directory=ChannelDirectory(storage),
            store=MessageStore(storage, current_user_id=user_id),
            subscriptions=RealtimeSubscriptionManager(realtime, storage),
            responder=responder or mock_responder,
            **kwargs,
        )

    return factory
