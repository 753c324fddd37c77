"""FastAPI application setup."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from ..logging_config import get_logger
from .errors import error_response
from .routes import (
    create_chat_router,
    create_insights_router,
    create_invites_router,
    create_observability_router,
    create_sessions_router,
    create_tasks_router,
)


logger = get_logger(__name__)

# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        """Manage application lifespan."""
        await application.start()
        yield
        await application.stop()

    fastapi_app = FastAPI(
        title="NativeIQ API",
        description="Team chat, realtime sessions and the Native assistant",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in origins if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @fastapi_app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        return error_response(
            400,
            "BAD_REQUEST",
            "Invalid request body",
            {"errors": jsonable_encoder(exc.errors())},
        )

    @fastapi_app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
        return error_response(500, "SERVER_ERROR", "Internal server error")

    fastapi_app.include_router(create_chat_router(application))
    fastapi_app.include_router(create_invites_router(application))
    fastapi_app.include_router(create_observability_router(application))
    fastapi_app.include_router(create_sessions_router(application))
    fastapi_app.include_router(create_insights_router(application))
    fastapi_app.include_router(create_tasks_router(application))

    return fastapi_app
