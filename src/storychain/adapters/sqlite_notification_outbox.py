"""Transactional notification outbox stored beside the story tables."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final
from uuid import uuid4

from storychain.adapters.sqlite_session import SQLiteDatabase, SQLiteSession, sqlite_errors

_SCHEMA: Final = [
    """
    CREATE TABLE IF NOT EXISTS notifications (
        notification_id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        notification_type TEXT NOT NULL,
        payload_json TEXT NOT NULL,
        is_read INTEGER NOT NULL DEFAULT 0,
        delivered_at_utc TEXT,
        created_at_utc TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_notifications_user_created
    ON notifications(user_id, created_at_utc)
    """,
]


@dataclass(frozen=True)
class StoredNotification:
    notification_id: str
    user_id: str
    notification_type: str
    payload: dict[str, Any]
    is_read: bool
    delivered_at_utc: str | None
    created_at_utc: str


class SQLiteNotificationOutbox:
    """Rows written in the creating transaction; a dispatcher marks them delivered."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._database = database
        self._database.initialize(_SCHEMA)

    def enqueue(
        self,
        user_id: str,
        notification_type: str,
        payload: dict[str, object],
        *,
        session: SQLiteSession,
    ) -> str:
        notification_id = uuid4().hex
        with sqlite_errors("Queueing notification"):
            session.connection.execute(
                """
                INSERT INTO notifications (
                    notification_id, user_id, notification_type, payload_json, created_at_utc
                )
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    notification_id,
                    user_id,
                    notification_type,
                    json.dumps(payload, sort_keys=True),
                    datetime.now(UTC).isoformat(),
                ),
            )
        return notification_id

    def list_for_user(
        self, user_id: str, *, session: SQLiteSession, limit: int = 50
    ) -> list[StoredNotification]:
        with sqlite_errors("Listing notifications"):
            rows = session.connection.execute(
                """
                SELECT notification_id, user_id, notification_type, payload_json, is_read,
                       delivered_at_utc, created_at_utc
                FROM notifications
                WHERE user_id = ?
                ORDER BY created_at_utc DESC, notification_id
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def list_pending(self, *, session: SQLiteSession, limit: int = 100) -> list[StoredNotification]:
        with sqlite_errors("Listing pending notifications"):
            rows = session.connection.execute(
                """
                SELECT notification_id, user_id, notification_type, payload_json, is_read,
                       delivered_at_utc, created_at_utc
                FROM notifications
                WHERE delivered_at_utc IS NULL
                ORDER BY created_at_utc, notification_id
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def mark_delivered(self, notification_ids: list[str], *, session: SQLiteSession) -> int:
        if not notification_ids:
            return 0
        placeholders = ", ".join("?" for _ in notification_ids)
        with sqlite_errors("Marking notifications delivered"):
            cursor = session.connection.execute(
                f"""
                UPDATE notifications
                SET delivered_at_utc = ?
                WHERE delivered_at_utc IS NULL AND notification_id IN ({placeholders})
                """,
                (datetime.now(UTC).isoformat(), *notification_ids),
            )
        return cursor.rowcount

    @staticmethod
    def _from_row(row: Any) -> StoredNotification:
        return StoredNotification(
            notification_id=str(row["notification_id"]),
            user_id=str(row["user_id"]),
            notification_type=str(row["notification_type"]),
            payload=json.loads(row["payload_json"]),
            is_read=bool(row["is_read"]),
            delivered_at_utc=row["delivered_at_utc"],
            created_at_utc=str(row["created_at_utc"]),
        )
