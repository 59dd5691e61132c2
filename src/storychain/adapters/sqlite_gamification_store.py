"""SQLite-backed XP and badge ledger."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Final

from storychain.adapters.sqlite_session import SQLiteDatabase, SQLiteSession, sqlite_errors
from storychain.domain.errors import InternalError
from storychain.domain.models import UserProgress

_PROGRESS_COLUMNS: Final = frozenset({"chapters_written", "branches_created"})

_SCHEMA: Final = [
    """
    CREATE TABLE IF NOT EXISTS user_progress (
        user_id TEXT PRIMARY KEY,
        xp INTEGER NOT NULL DEFAULT 0,
        chapters_written INTEGER NOT NULL DEFAULT 0,
        branches_created INTEGER NOT NULL DEFAULT 0,
        updated_at_utc TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_badges (
        user_id TEXT NOT NULL,
        badge_id TEXT NOT NULL,
        earned_at_utc TEXT NOT NULL,
        PRIMARY KEY (user_id, badge_id)
    )
    """,
]


class SQLiteGamificationStore:
    """Per-user XP, contribution counters, and earned badges."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._database = database
        self._database.initialize(_SCHEMA)

    def award_xp(
        self,
        user_id: str,
        amount: int,
        stat_deltas: dict[str, int],
        *,
        session: SQLiteSession,
    ) -> UserProgress:
        unknown = sorted(set(stat_deltas) - _PROGRESS_COLUMNS)
        if unknown:
            raise InternalError(f"Unknown progress stats: {', '.join(unknown)}.")
        chapters = int(stat_deltas.get("chapters_written", 0))
        branches = int(stat_deltas.get("branches_created", 0))
        now = datetime.now(UTC).isoformat()
        with sqlite_errors("Awarding XP"):
            session.connection.execute(
                """
                INSERT INTO user_progress (
                    user_id, xp, chapters_written, branches_created, updated_at_utc
                )
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE SET
                    xp = xp + excluded.xp,
                    chapters_written = chapters_written + excluded.chapters_written,
                    branches_created = branches_created + excluded.branches_created,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (user_id, amount, chapters, branches, now),
            )
        return self.get_progress(user_id, session=session)

    def grant_badge_if_absent(self, user_id: str, badge_id: str, *, session: SQLiteSession) -> bool:
        """Return True only when the badge was newly granted."""
        with sqlite_errors("Granting badge"):
            cursor = session.connection.execute(
                """
                INSERT INTO user_badges (user_id, badge_id, earned_at_utc)
                VALUES (?, ?, ?)
                ON CONFLICT (user_id, badge_id) DO NOTHING
                """,
                (user_id, badge_id, datetime.now(UTC).isoformat()),
            )
        return cursor.rowcount == 1

    def get_progress(self, user_id: str, *, session: SQLiteSession) -> UserProgress:
        with sqlite_errors("Loading user progress"):
            row = session.connection.execute(
                """
                SELECT xp, chapters_written, branches_created
                FROM user_progress
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            badge_rows = session.connection.execute(
                "SELECT badge_id FROM user_badges WHERE user_id = ?", (user_id,)
            ).fetchall()
        badges = frozenset(str(badge["badge_id"]) for badge in badge_rows)
        if row is None:
            return UserProgress(user_id=user_id, badges=badges)
        return UserProgress(
            user_id=user_id,
            xp=int(row["xp"]),
            chapters_written=int(row["chapters_written"]),
            branches_created=int(row["branches_created"]),
            badges=badges,
        )
