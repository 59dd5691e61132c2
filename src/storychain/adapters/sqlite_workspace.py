"""Wires one SQLite database into the stores and the chapter creation service."""

from __future__ import annotations

from dataclasses import dataclass

from storychain.adapters.sqlite_gamification_store import SQLiteGamificationStore
from storychain.adapters.sqlite_notification_outbox import SQLiteNotificationOutbox
from storychain.adapters.sqlite_session import SQLiteDatabase
from storychain.adapters.sqlite_story_store import SQLiteStoryStore
from storychain.application.chapter_creation import ChapterCreationService
from storychain.settings import RuntimeSettings


@dataclass(frozen=True)
class SQLiteWorkspace:
    database: SQLiteDatabase
    stories: SQLiteStoryStore
    gamification: SQLiteGamificationStore
    outbox: SQLiteNotificationOutbox
    chapters: ChapterCreationService


def create_sqlite_workspace(settings: RuntimeSettings) -> SQLiteWorkspace:
    """Build every store over a shared database file and inject them into the service."""
    database = SQLiteDatabase(
        settings.db_path,
        busy_timeout_seconds=float(settings.busy_timeout_seconds),
        max_transaction_seconds=float(settings.max_transaction_seconds),
    )
    stories = SQLiteStoryStore(database)
    gamification = SQLiteGamificationStore(database)
    outbox = SQLiteNotificationOutbox(database)
    chapters = ChapterCreationService(
        transactions=database,
        repository=stories,
        outbox=outbox,
        ledger=gamification,
    )
    return SQLiteWorkspace(
        database=database,
        stories=stories,
        gamification=gamification,
        outbox=outbox,
        chapters=chapters,
    )
