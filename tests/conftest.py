from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path

import pytest

# storychain.api.app builds a module-level app on import; keep its database out of the checkout.
os.environ.setdefault(
    "STORYCHAIN_DB_PATH", str(Path(tempfile.gettempdir()) / "storychain-tests" / "import.db")
)

from storychain.adapters.sqlite_notification_outbox import StoredNotification  # noqa: E402
from storychain.adapters.sqlite_workspace import (  # noqa: E402
    SQLiteWorkspace,
    create_sqlite_workspace,
)
from storychain.application.validation import ChapterCreateInput  # noqa: E402
from storychain.domain.models import (  # noqa: E402
    Chapter,
    ChapterCreationResult,
    Story,
    StorySettings,
    StoryStatus,
    UserProgress,
)
from storychain.domain.roles import StoryRole  # noqa: E402
from storychain.settings import RuntimeSettings  # noqa: E402

CHAPTER_TEXT = (
    "The lighthouse keeper counted the ships that never arrived, "
    "and wrote each name in the margin of the tide tables."
)


@dataclass
class StoryKit:
    """Seeds and inspects one SQLite workspace for tests."""

    workspace: SQLiteWorkspace

    def story(
        self,
        *,
        creator_id: str = "alice",
        title: str = "The Lighthouse",
        status: StoryStatus = "PUBLISHED",
        **settings: bool,
    ) -> Story:
        with self.workspace.database.transaction("seed story") as session:
            return self.workspace.stories.create_story(
                creator_id=creator_id,
                title=title,
                settings=StorySettings(**settings),
                status=status,
                session=session,
            )

    def collaborator(
        self, story_id: str, user_id: str, role: StoryRole, *, status: str = "ACCEPTED"
    ) -> None:
        with self.workspace.database.transaction("seed collaborator") as session:
            self.workspace.stories.upsert_collaborator(
                story_id=story_id,
                user_id=user_id,
                role=role,
                status=status,  # type: ignore[arg-type]
                session=session,
            )

    def require_approval(self, story: Story, required: bool = True) -> Story:
        with self.workspace.database.transaction("seed settings") as session:
            return self.workspace.stories.update_story_settings(
                story.story_id,
                replace(story.settings, require_approval=required),
                session=session,
            )

    def write(
        self,
        story_id: str,
        user_id: str,
        *,
        parent_chapter_id: str | None = None,
        title: str = "Chapter",
        content: str = CHAPTER_TEXT,
    ) -> ChapterCreationResult:
        return self.workspace.chapters.create_chapter(
            ChapterCreateInput(
                story_id=story_id,
                title=title,
                content=content,
                user_id=user_id,
                parent_chapter_id=parent_chapter_id,
            )
        )

    def execute(self, sql: str, params: tuple[object, ...] = ()) -> None:
        with self.workspace.database.transaction("seed raw") as session:
            session.connection.execute(sql, params)

    def count(self, table: str) -> int:
        with self.workspace.database.read_session("count") as session:
            return int(session.connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])

    def load_story(self, story_id: str) -> Story:
        with self.workspace.database.read_session("load story") as session:
            story = self.workspace.stories.find_story_by_id(story_id, session=session)
        assert story is not None
        return story

    def load_chapter(self, chapter_id: str) -> Chapter | None:
        with self.workspace.database.read_session("load chapter") as session:
            return self.workspace.stories.find_chapter_by_id(chapter_id, session=session)

    def chapters(self, story_id: str) -> list[Chapter]:
        with self.workspace.database.read_session("list chapters") as session:
            return self.workspace.stories.list_chapters(story_id, session=session)

    def notifications(self, user_id: str) -> list[StoredNotification]:
        with self.workspace.database.read_session("list notifications") as session:
            return self.workspace.outbox.list_for_user(user_id, session=session)

    def progress(self, user_id: str) -> UserProgress:
        with self.workspace.database.read_session("load progress") as session:
            return self.workspace.gamification.get_progress(user_id, session=session)


@pytest.fixture
def runtime_settings(tmp_path: Path) -> RuntimeSettings:
    return RuntimeSettings(
        db_path=tmp_path / "storychain.db",
        busy_timeout_seconds=5,
        max_transaction_seconds=30,
        cors_origins=(),
    )


@pytest.fixture
def workspace(runtime_settings: RuntimeSettings) -> SQLiteWorkspace:
    return create_sqlite_workspace(runtime_settings)


@pytest.fixture
def kit(workspace: SQLiteWorkspace) -> StoryKit:
    return StoryKit(workspace)
