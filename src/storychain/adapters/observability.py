"""Runtime logging configuration with bounded retention."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from storychain.settings import LoggingSettings, load_logging_settings

_CONFIGURED = False


def configure_runtime_logging(settings: LoggingSettings | None = None) -> None:
    """Configure console + rotating file logs once per process."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = settings or load_logging_settings()
    level = getattr(logging, resolved.level, logging.INFO)
    resolved.log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        filename=resolved.log_path,
        maxBytes=resolved.max_bytes,
        backupCount=resolved.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(stream_handler)
    root.addHandler(file_handler)

    logging.getLogger("uvicorn.access").setLevel(
        getattr(logging, resolved.access_level, logging.WARNING)
    )
    logger = logging.getLogger(__name__)
    logger.info(
        "logging.configured level=%s log_path=%s backup_count=%s",
        resolved.level,
        resolved.log_path,
        resolved.backup_count,
    )

    _CONFIGURED = True
