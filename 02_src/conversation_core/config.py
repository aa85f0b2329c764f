"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "conversations.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None


@dataclass(frozen=True)
class Settings:
    """Runtime settings, normally read from the environment."""

    database_url: str | None = None
    event_log_backend: str = "sqlite"  # "sqlite" or "memory"
    log_level: str = "INFO"
    command_max_attempts: int = 5
    command_retry_base_delay: float = 0.05
    command_retry_max_delay: float = 1.0
    snapshot_cache_size: int = 1024
    require_agent: bool = False
    max_participants: int | None = None
    api_host: str = "localhost"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            event_log_backend=os.getenv("EVENT_LOG_BACKEND", "sqlite").lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            command_max_attempts=int(os.getenv("COMMAND_MAX_ATTEMPTS", "5")),
            command_retry_base_delay=float(
                os.getenv("COMMAND_RETRY_BASE_DELAY", "0.05")
            ),
            command_retry_max_delay=float(os.getenv("COMMAND_RETRY_MAX_DELAY", "1.0")),
            snapshot_cache_size=int(os.getenv("SNAPSHOT_CACHE_SIZE", "1024")),
            require_agent=_env_bool("REQUIRE_AGENT", False),
            max_participants=_env_int("MAX_PARTICIPANTS"),
            api_host=os.getenv("API_HOST", "localhost"),
            api_port=int(os.getenv("API_PORT", "8000")),
        )
