"""CLI entrypoint for serving the storychain HTTP API."""

from __future__ import annotations

import argparse
import os
from dataclasses import replace
from pathlib import Path

import uvicorn

from storychain.adapters.observability import configure_runtime_logging
from storychain.settings import DEFAULT_DB_PATH, load_logging_settings

# flag name -> environment variable read by load_runtime_settings in the server process
_RUNTIME_ENV_FLAGS = {
    "db_path": "STORYCHAIN_DB_PATH",
    "busy_timeout_seconds": "STORYCHAIN_BUSY_TIMEOUT_SECONDS",
    "max_transaction_seconds": "STORYCHAIN_MAX_TRANSACTION_SECONDS",
}


def build_arg_parser() -> argparse.ArgumentParser:
    """Create CLI args for the API server process."""
    parser = argparse.ArgumentParser(description="Serve the storychain API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument(
        "--db-path",
        default="",
        help=f"SQLite path for stories, chapters and the outbox (default: {DEFAULT_DB_PATH}).",
    )
    parser.add_argument(
        "--busy-timeout-seconds",
        type=int,
        default=None,
        help="Seconds to wait for the SQLite write lock before failing as retryable.",
    )
    parser.add_argument(
        "--max-transaction-seconds",
        type=int,
        default=None,
        help="Upper bound on one chapter transaction before it is rolled back.",
    )
    parser.add_argument("--log-level", default="", help="Root log level, e.g. DEBUG or INFO.")
    parser.add_argument("--log-path", default="", help="Rotating log file path.")
    return parser


def _export_runtime_env(parsed: argparse.Namespace) -> None:
    for flag, env_name in _RUNTIME_ENV_FLAGS.items():
        value = getattr(parsed, flag)
        if value is None or not str(value).strip():
            continue
        os.environ[env_name] = str(value).strip()


def main(argv: list[str] | None = None) -> None:
    """Parse CLI flags, configure logging, and serve the app module with uvicorn."""
    parsed = build_arg_parser().parse_args(argv)
    logging_settings = load_logging_settings()
    if parsed.log_level.strip():
        logging_settings = replace(logging_settings, level=parsed.log_level.strip().upper())
    if parsed.log_path.strip():
        logging_settings = replace(logging_settings, log_path=Path(parsed.log_path.strip()))
    configure_runtime_logging(logging_settings)
    _export_runtime_env(parsed)
    uvicorn.run(
        "storychain.api.app:app",
        host=str(parsed.host),
        port=int(parsed.port),
        reload=bool(parsed.reload),
    )


if __name__ == "__main__":
    main()
