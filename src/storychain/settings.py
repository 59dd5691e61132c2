"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_PATH = Path("work/local/storychain.db")
DEFAULT_LOG_PATH = Path("work/logs/storychain.log")
DEFAULT_CORS_ORIGINS = ("http://127.0.0.1:5173", "http://localhost:5173")


@dataclass(frozen=True)
class RuntimeSettings:
    db_path: Path
    busy_timeout_seconds: int
    max_transaction_seconds: int
    cors_origins: tuple[str, ...]


def int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _resolve_db_path(db_path: Path | None) -> Path:
    """Resolve DB path from explicit arg, env var, then default path."""
    if db_path is not None:
        return db_path
    env_value = os.environ.get("STORYCHAIN_DB_PATH", "").strip()
    if env_value:
        return Path(env_value)
    return DEFAULT_DB_PATH


def _cors_origins() -> tuple[str, ...]:
    raw = os.environ.get("STORYCHAIN_CORS_ORIGINS", "").strip()
    if raw:
        return tuple(origin.strip() for origin in raw.split(",") if origin.strip())
    return DEFAULT_CORS_ORIGINS


def load_runtime_settings(*, db_path: Path | None = None) -> RuntimeSettings:
    return RuntimeSettings(
        db_path=_resolve_db_path(db_path),
        busy_timeout_seconds=int_env(
            "STORYCHAIN_BUSY_TIMEOUT_SECONDS", 5, minimum=1, maximum=120
        ),
        max_transaction_seconds=int_env(
            "STORYCHAIN_MAX_TRANSACTION_SECONDS", 30, minimum=1, maximum=600
        ),
        cors_origins=_cors_origins(),
    )


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    log_path: Path
    max_bytes: int
    backup_count: int
    access_level: str


def load_logging_settings() -> LoggingSettings:
    """Resolve console/file log options; unknown level names fall back at apply time."""
    return LoggingSettings(
        level=os.environ.get("STORYCHAIN_LOG_LEVEL", "").strip().upper() or "INFO",
        log_path=Path(os.environ.get("STORYCHAIN_LOG_PATH", "").strip() or DEFAULT_LOG_PATH),
        max_bytes=int_env(
            "STORYCHAIN_LOG_MAX_BYTES",
            5 * 1024 * 1024,
            minimum=64 * 1024,
            maximum=100 * 1024 * 1024,
        ),
        backup_count=int_env("STORYCHAIN_LOG_BACKUP_COUNT", 10, minimum=1, maximum=120),
        access_level=os.environ.get("STORYCHAIN_ACCESS_LOG_LEVEL", "").strip().upper()
        or "WARNING",
    )
