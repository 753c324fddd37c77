"""Chat Session Controller: channel selection, sending, assistant invocation."""

import asyncio
from enum import Enum
from typing import Callable

from ..assistant import IAssistantResponder, fallback_response
from ..config import ChatSettings
from ..errors import AssistantError, ChatError, FetchError, SendError, SubscriptionError
from ..logging_config import get_logger
from ..models import (
    AssistantCommand,
    AssistantReply,
    Channel,
    ChannelType,
    ChatMember,
    ChatTurn,
    Message,
)
from ..realtime import RealtimeSubscriptionManager
from ..tracker import ITracker
from .directory import ChannelDirectory, display_name
from .policy import should_invoke_assistant
from .store import MessageStore

logger = get_logger(__name__)


MessageListener = Callable[[Message], None]


class SessionState(str, Enum):
    NO_CHANNEL_SELECTED = "no_channel_selected"
    CHANNEL_SELECTED = "channel_selected"


class ChatSession:
    """Stateful chat session for one signed-in user.

    The message buffer only ever grows for the selected channel and holds each
    message id at most once, whichever path (send result or realtime echo)
    delivers it first. Overlapping assistant requests are queued and answered
    in FIFO order.
    """

    def __init__(
        self,
        *,
        user_id: str,
        directory: ChannelDirectory,
        store: MessageStore,
        subscriptions: RealtimeSubscriptionManager,
        responder: IAssistantResponder,
        settings: ChatSettings | None = None,
        tracker: ITracker | None = None,
        on_message: MessageListener | None = None,
    ):
        self._user_id = user_id
        self._directory = directory
        self._store = store
        self._subscriptions = subscriptions
        self._responder = responder
        self._settings = settings or ChatSettings()
        self._tracker = tracker
        self._on_message = on_message

        self.organization_id: str | None = None
        self.channels: list[Channel] = []
        self.members: list[ChatMember] = []
        self.current_channel: Channel | None = None
        self.assistant_responding = False
        self.loading = False
        self.sending = False
        self.error: ChatError | None = None
        self.last_command: AssistantCommand | None = None

        self._messages: list[Message] = []
        self._message_ids: set[str] = set()
        self._selection_seq = 0
        self._pending_assistant = 0
        self._assistant_lock = asyncio.Lock()

    # Derived state

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def state(self) -> SessionState:
        if self.current_channel is None:
            return SessionState.NO_CHANNEL_SELECTED
        return SessionState.CHANNEL_SELECTED

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def team_channel(self) -> Channel | None:
        return next((c for c in self.channels if c.type is ChannelType.TEAM), None)

    @property
    def assistant_channel(self) -> Channel | None:
        return next((c for c in self.channels if c.type is ChannelType.AI_ASSISTANT), None)

    @property
    def is_assistant_channel(self) -> bool:
        return (
            self.current_channel is not None
            and self.current_channel.type is ChannelType.AI_ASSISTANT
        )

    def dismiss_error(self) -> None:
        self.error = None

    # Organization and channels

    async def open_organization(self, organization_id: str) -> list[Channel]:
        """Load channels and members, then select the default channel."""
        self.organization_id = organization_id
        try:
            self.channels = await self._directory.list_channels(organization_id)
        except FetchError as e:
            self._record_error(e)
            self.channels = []
        self.members = await self._directory.list_members(organization_id)

        default = self.team_channel or self.assistant_channel
        if default is not None:
            await self.select_channel(default)
        else:
            await self._clear_selection()
        return self.channels

    async def _clear_selection(self) -> None:
        # Nothing from the previous organization may stay selected
        self._selection_seq += 1
        await self._subscriptions.unsubscribe()
        self.current_channel = None
        self._messages = []
        self._message_ids = set()
        self.loading = False

    async def open_direct_channel(self, member: ChatMember) -> Channel:
        """Open (or reuse) the DM with a member and select it."""
        if self.organization_id is None:
            raise RuntimeError("No organization opened")

        me = next(
            (m for m in self.members if m.id == self._user_id),
            ChatMember(id=self._user_id, full_name=None, avatar_url=None),
        )
        try:
            channel = await self._directory.open_direct_channel(self.organization_id, me, member)
        except SendError as e:
            self._record_error(e)
            raise

        if all(c.id != channel.id for c in self.channels):
            self.channels.append(channel)
        await self.select_channel(channel)
        return channel

    async def select_channel(self, channel: Channel) -> None:
        """Switch to channel: unsubscribe, reset, fetch history, subscribe."""
        self._selection_seq += 1
        seq = self._selection_seq

        def is_current() -> bool:
            return seq == self._selection_seq

        await self._subscriptions.unsubscribe()
        if not is_current():
            return

        self.current_channel = channel
        self._messages = []
        self._message_ids = set()
        self.error = None
        self.loading = True

        try:
            history = await self._store.fetch_history(
                channel.id, limit=self._settings.history_limit
            )
        except FetchError as e:
            if not is_current():
                return
            self._record_error(e)
            history = []
        finally:
            if is_current():
                self.loading = False

        if not is_current():
            logger.debug(
                "Discarded stale history for channel %s",
                channel.id,
                extra={"channel_id": channel.id},
            )
            return

        self._merge_history(history)

        try:
            await self._subscriptions.subscribe(channel.id, self._receive, is_current=is_current)
        except SubscriptionError as e:
            self._record_error(e)

        await self._track(
            "channel_selected",
            {"channel_id": channel.id, "channel_type": channel.type.value},
        )

    async def load_older_messages(self) -> list[Message]:
        """Prepend the page of history before the oldest buffered message."""
        channel = self.current_channel
        if channel is None or not self._messages:
            return []

        seq = self._selection_seq
        try:
            older = await self._store.fetch_history(
                channel.id,
                limit=self._settings.history_limit,
                before=self._messages[0].created_at,
            )
        except FetchError as e:
            if seq == self._selection_seq:
                self._record_error(e)
            return []

        if seq != self._selection_seq:
            return []

        fresh = [m for m in older if m.id not in self._message_ids]
        self._messages = fresh + self._messages
        self._message_ids.update(m.id for m in fresh)
        return fresh

    async def close(self) -> None:
        """Tear down the realtime subscription."""
        self._selection_seq += 1
        await self._subscriptions.unsubscribe()

    # Messages

    async def send_message(self, content: str) -> Message | None:
        """Send a user message; asks the assistant when the channel policy says so."""
        channel = self.current_channel
        text = content.strip()
        if channel is None or not text:
            return None

        self.sending = True
        self.error = None
        try:
            message = await self._store.append_message(channel.id, text)
        except SendError as e:
            self._record_error(e)
            raise
        finally:
            self.sending = False

        self._add_message(message)
        await self._track(
            "message_sent",
            {"channel_id": channel.id, "message_id": message.id},
        )

        if should_invoke_assistant(channel, text, self._settings.mention_token):
            await self._run_assistant(AssistantCommand(prompt=text, channel_id=channel.id))

        return message

    async def request_assistant(self, prompt: str) -> Message | None:
        """Ask the assistant in the selected channel."""
        channel = self.current_channel
        text = prompt.strip()
        if channel is None or not text:
            return None
        return await self._run_assistant(AssistantCommand(prompt=text, channel_id=channel.id))

    async def retry_assistant(self) -> Message | None:
        """Re-issue the last assistant request; no-op without one."""
        if self.last_command is None:
            return None
        return await self._run_assistant(self.last_command.retry())

    async def regenerate(self, message: Message) -> Message | None:
        """Answer again the user message preceding `message`."""
        position = next(
            (i for i, m in enumerate(self._messages) if m.id == message.id),
            len(self._messages),
        )
        prompt = next(
            (m.content for m in reversed(self._messages[:position]) if m.role == "user"),
            None,
        )
        if prompt is None and self.last_command is not None:
            prompt = self.last_command.prompt
        if prompt is None:
            return None

        command = AssistantCommand(prompt=prompt, channel_id=message.channel_id)
        if self.last_command is not None and self.last_command.prompt == prompt:
            command = self.last_command.retry()
        return await self._run_assistant(command)

    async def _run_assistant(self, command: AssistantCommand) -> Message | None:
        history = self._history_window(command)
        self.last_command = command
        self._pending_assistant += 1
        self.assistant_responding = True

        try:
            async with self._assistant_lock:
                self.error = None
                await self._track(
                    "assistant_invoked",
                    {"channel_id": command.channel_id, "attempt": command.attempt},
                )

                reply = await self._ask(command, history)
                if reply.is_fallback:
                    error = reply.error
                    if not isinstance(error, ChatError):
                        error = AssistantError(str(error))
                    self._record_error(error)
                    await self._track(
                        "assistant_fallback",
                        {"channel_id": command.channel_id, "error": str(error)},
                    )

                try:
                    message = await self._store.append_message(
                        command.channel_id,
                        reply.content,
                        is_assistant=True,
                        metadata={"attempt": command.attempt, "fallback": reply.is_fallback},
                    )
                except SendError as e:
                    self._record_error(e)
                    return None

                self._add_message(message)
                return message
        finally:
            self._pending_assistant -= 1
            self.assistant_responding = self._pending_assistant > 0

    async def _ask(self, command: AssistantCommand, history: list[ChatTurn]) -> AssistantReply:
        try:
            return await self._responder.respond(command.prompt, history)
        except Exception as e:
            logger.error("Assistant responder raised: %s", e, exc_info=True)
            return AssistantReply(
                content=fallback_response(command.prompt),
                error=AssistantError(f"Assistant failed: {e}"),
            )

    def _history_window(self, command: AssistantCommand) -> list[ChatTurn]:
        if self.current_channel is None or self.current_channel.id != command.channel_id:
            return []

        messages = self._messages
        # The prompt itself is sent separately
        if messages and messages[-1].role == "user" and messages[-1].content == command.prompt:
            messages = messages[:-1]
        elif command.attempt > 1:
            # Retries also drop the answers given to the earlier attempt
            cut = next(
                (
                    i
                    for i in range(len(messages) - 1, -1, -1)
                    if messages[i].role == "user" and messages[i].content == command.prompt
                ),
                None,
            )
            if cut is not None:
                messages = messages[:cut]

        window = self._settings.history_window
        recent = messages[-window:] if window > 0 else []
        return [ChatTurn(role=m.role, content=m.content) for m in recent]

    # Buffer

    async def _receive(self, message: Message) -> None:
        self._add_message(message)

    def _add_message(self, message: Message) -> bool:
        if self.current_channel is None or message.channel_id != self.current_channel.id:
            return False
        if message.id in self._message_ids:
            logger.debug("Message %s already buffered, skipping", message.id)
            return False

        self._messages.append(message)
        self._message_ids.add(message.id)
        if self._on_message is not None:
            self._on_message(message)
        return True

    def _merge_history(self, history: list[Message]) -> None:
        # Keep anything that reached the buffer while history was loading
        history_ids = {m.id for m in history}
        arrived = [m for m in self._messages if m.id not in history_ids]
        self._messages = list(history) + arrived
        self._message_ids = history_ids | {m.id for m in arrived}

    # Helpers

    def _record_error(self, error: ChatError) -> None:
        self.error = error
        logger.warning(
            "%s: %s",
            type(error).__name__,
            error.message,
            extra={
                "user_id": self._user_id,
                "channel_id": self.current_channel.id if self.current_channel else None,
            },
        )

    async def _track(self, event_type: str, data: dict) -> None:
        if self._tracker is not None:
            organization_id = self.organization_id
            if organization_id is None and self.current_channel is not None:
                organization_id = self.current_channel.organization_id
            data = {"organization_id": organization_id, **data}
            await self._tracker.track(event_type, f"session:{self._user_id}", data)

    def snapshot(self) -> dict:
        """Serializable view of the session state."""
        return {
            "state": self.state.value,
            "organization_id": self.organization_id,
            "current_channel_id": self.current_channel.id if self.current_channel else None,
            "channels": [
                {
                    "id": c.id,
                    "name": c.name,
                    "display_name": display_name(c, self._user_id),
                    "type": c.type.value,
                }
                for c in self.channels
            ],
            "members": [
                {"id": m.id, "full_name": m.full_name, "role": m.role.value}
                for m in self.members
            ],
            "messages": [m.to_dict() for m in self._messages],
            "assistant_responding": self.assistant_responding,
            "loading": self.loading,
            "sending": self.sending,
            "error": (
                {
                    "kind": type(self.error).__name__,
                    "message": self.error.message,
                    "retryable": self.error.retryable,
                }
                if self.error
                else None
            ),
            "can_retry": self.last_command is not None,
        }
