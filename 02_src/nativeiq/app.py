"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

import httpx

from .assistant import AssistantResponder, ContextAssembler
from .chat import ChannelDirectory, ChatSession, MessageListener, MessageStore
from .config import ChatSettings, resolve_db_path
from .invites import InviteService, ResendEmailSender
from .llm import ILLMProvider, LLMProvider
from .logging_config import get_logger
from .realtime import RealtimeHub, RealtimeSubscriptionManager
from .storage import IStorage, Storage
from .tracker import Tracker

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        settings: ChatSettings | None = None,
        llm: ILLMProvider | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._settings = settings or ChatSettings.from_env()

        # Components (will be initialized in start())
        self._realtime: RealtimeHub | None = None
        self._storage: IStorage | None = None
        self._tracker: Tracker | None = None
        self._llm: ILLMProvider | None = llm
        self._context: ContextAssembler | None = None
        self._http: httpx.AsyncClient | None = None
        self._invites: InviteService | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Realtime hub (no dependencies)
        self._realtime = RealtimeHub()

        # 2. Storage (publishes message inserts to the hub)
        self._storage = Storage(self._db_path, realtime=self._realtime)
        await self._storage.init()
        logger.info("Storage initialized")

        # 3. Tracker (depends on Storage + hub)
        self._tracker = Tracker(self._storage, self._realtime)
        await self._tracker.start()

        # 4. LLMProvider (optional: the chat endpoint reports it as unconfigured)
        if self._llm is None:
            try:
                self._llm = LLMProvider()
                logger.info("LLM provider initialized")
            except ValueError as e:
                logger.warning("LLM provider unavailable: %s", e)

        # 5. Context assembler (depends on Storage)
        self._context = ContextAssembler(self._storage)

        # 6. Outbound HTTP for the assistant endpoint and email provider
        self._http = httpx.AsyncClient()

        # 7. Invites (depends on Storage, HTTP, Tracker)
        self._invites = InviteService(
            storage=self._storage,
            email_sender=ResendEmailSender(self._http),
            app_url=os.getenv("APP_URL", "http://localhost:3000"),
            tracker=self._tracker,
        )
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._http:
            await self._http.aclose()
            self._http = None
        if self._tracker:
            await self._tracker.stop()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")

    def create_session(
        self,
        user_id: str,
        on_message: MessageListener | None = None,
    ) -> ChatSession:
        """Build a chat session bound to one user."""
        if not self._storage or not self._realtime or not self._http:
            raise RuntimeError("Application not started")

        return ChatSession(
            user_id=user_id,
            directory=ChannelDirectory(self._storage),
            store=MessageStore(self._storage, current_user_id=user_id),
            subscriptions=RealtimeSubscriptionManager(self._realtime, self._storage),
            responder=AssistantResponder(
                self._http,
                self._settings.ai_endpoint,
                user_id=user_id,
                timeout=self._settings.ai_timeout,
                history_window=self._settings.history_window,
            ),
            settings=self._settings,
            tracker=self._tracker,
            on_message=on_message,
        )

    @property
    def settings(self) -> ChatSettings:
        return self._settings

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def realtime(self) -> RealtimeHub:
        if not self._realtime:
            raise RuntimeError("Application not started")
        return self._realtime

    @property
    def tracker(self) -> Tracker:
        if not self._tracker:
            raise RuntimeError("Application not started")
        return self._tracker

    @property
    def llm(self) -> ILLMProvider | None:
        """Language model, or None when no API key is configured."""
        return self._llm

    @property
    def context(self) -> ContextAssembler:
        if not self._context:
            raise RuntimeError("Application not started")
        return self._context

    @property
    def invites(self) -> InviteService:
        if not self._invites:
            raise RuntimeError("Application not started")
        return self._invites
