"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "nativeiq.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DEFAULT_AI_ENDPOINT = "http://localhost:8000/api/chat"
MENTION_TOKEN = "@native"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


@dataclass(frozen=True)
class ChatSettings:
    """Tunables for a chat session."""

    ai_endpoint: str = DEFAULT_AI_ENDPOINT
    ai_timeout: float = 20.0
    history_window: int = 10
    history_limit: int = 50
    mention_token: str = MENTION_TOKEN

    @classmethod
    def from_env(cls) -> "ChatSettings":
        """Build settings from NATIVE_* environment variables."""
        return cls(
            ai_endpoint=os.getenv("NATIVE_AI_ENDPOINT", DEFAULT_AI_ENDPOINT),
            ai_timeout=float(os.getenv("NATIVE_AI_TIMEOUT", "20")),
            history_window=int(os.getenv("NATIVE_HISTORY_WINDOW", "10")),
            history_limit=int(os.getenv("NATIVE_HISTORY_LIMIT", "50")),
        )
