"""SQLite connection handling and transaction sessions shared by every store."""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from storychain.domain.errors import ChapterWorkflowError, InternalError, TransientError

logger = logging.getLogger(__name__)

_LOCK_MARKERS = ("database is locked", "database table is locked", "busy")


@dataclass
class SQLiteSession:
    """One open unit of work; stores run every statement through ``connection``."""

    connection: sqlite3.Connection
    label: str
    deadline: float
    writable: bool = True

    def ensure_within_deadline(self) -> None:
        if time.monotonic() > self.deadline:
            raise TransientError(f"Transaction '{self.label}' exceeded its time limit.")


def translate_sqlite_error(exc: sqlite3.Error, *, action: str) -> ChapterWorkflowError:
    message = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError) and any(
        marker in message for marker in _LOCK_MARKERS
    ):
        return TransientError(f"{action} timed out waiting for the database.")
    return InternalError(f"{action} failed: {exc}")


@contextmanager
def sqlite_errors(action: str) -> Iterator[None]:
    """Re-raise driver failures as workflow errors."""
    try:
        yield
    except sqlite3.Error as exc:
        raise translate_sqlite_error(exc, action=action) from exc


class SQLiteDatabase:
    """Opens connections and scopes transactions for one SQLite file."""

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout_seconds: float = 5.0,
        max_transaction_seconds: float = 30.0,
    ) -> None:
        self._db_path = db_path
        self._busy_timeout_seconds = busy_timeout_seconds
        self._max_transaction_seconds = max_transaction_seconds
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        connection = self.connect()
        try:
            connection.execute("PRAGMA journal_mode=WAL")
        finally:
            connection.close()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            str(self._db_path),
            timeout=self._busy_timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys=ON")
        return connection

    def initialize(self, statements: list[str]) -> None:
        """Run idempotent DDL in one transaction."""
        with self.transaction("initialize schema") as session:
            for statement in statements:
                session.connection.execute(statement)

    @contextmanager
    def transaction(self, label: str) -> Iterator[SQLiteSession]:
        """Take the write lock up front, commit on clean exit, roll back otherwise."""
        with self._session(label, begin="BEGIN IMMEDIATE", writable=True) as session:
            yield session

    @contextmanager
    def read_session(self, label: str) -> Iterator[SQLiteSession]:
        """Consistent read snapshot; never commits."""
        with self._session(label, begin="BEGIN", writable=False) as session:
            yield session

    @contextmanager
    def _session(self, label: str, *, begin: str, writable: bool) -> Iterator[SQLiteSession]:
        connection = self.connect()
        try:
            with sqlite_errors(f"Starting transaction '{label}'"):
                connection.execute(begin)
            session = SQLiteSession(
                connection=connection,
                label=label,
                deadline=time.monotonic() + self._max_transaction_seconds,
                writable=writable,
            )
            if writable:
                logger.debug("transaction.start label=%s", label)
            try:
                yield session
                if writable:
                    session.ensure_within_deadline()
                    try:
                        connection.execute("COMMIT")
                    except sqlite3.Error as exc:
                        raise TransientError(f"Transaction '{label}' failed to commit.") from exc
                    logger.debug("transaction.commit label=%s", label)
                else:
                    connection.execute("ROLLBACK")
            except BaseException as exc:
                if connection.in_transaction:
                    connection.execute("ROLLBACK")
                if writable:
                    logger.warning(
                        "transaction.rollback label=%s error=%s message=%s",
                        label,
                        type(exc).__name__,
                        exc,
                    )
                raise
        finally:
            connection.close()
