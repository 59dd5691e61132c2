"""Ports for persistence, notification, and gamification collaborators.

Every operation takes the transaction ``session`` yielded by
``TransactionManager.transaction``; the session type is opaque to the
application layer.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol

from storychain.domain.models import (
    Chapter,
    ChapterVersion,
    PullRequest,
    Story,
    StoryCollaborator,
    StoryStatField,
    UserProgress,
)

Session = Any


class TransactionManager(Protocol):
    """Opens one atomic unit of work; commits on clean exit, rolls back on error."""

    def transaction(self, label: str) -> AbstractContextManager[Session]: ...


class ChapterRepository(Protocol):
    """Story, chapter, collaborator, and pull-request storage."""

    def find_story_by_id(self, story_id: str, *, session: Session) -> Story | None: ...

    def find_chapter_by_id(self, chapter_id: str, *, session: Session) -> Chapter | None: ...

    def find_root_chapter(self, story_id: str, *, session: Session) -> Chapter | None: ...

    def find_accepted_collaborator(
        self, story_id: str, user_id: str, *, session: Session
    ) -> StoryCollaborator | None: ...

    def list_accepted_collaborators(
        self, story_id: str, *, session: Session
    ) -> list[StoryCollaborator]: ...

    def increment_child_branches(self, chapter_id: str, *, session: Session) -> int:
        """Atomically bump ``stats.child_branches`` and return the new value."""
        ...

    def increment_story_stat(
        self, story_id: str, stat: StoryStatField, *, session: Session
    ) -> int: ...

    def touch_story_activity(self, story_id: str, at_utc: str, *, session: Session) -> None: ...

    def insert_chapter(self, chapter: Chapter, *, session: Session) -> None: ...

    def insert_pull_request(self, pull_request: PullRequest, *, session: Session) -> None: ...

    def link_chapter_pull_request(
        self, chapter_id: str, pr_id: str, *, session: Session
    ) -> None: ...

    def insert_chapter_version(self, version: ChapterVersion, *, session: Session) -> None: ...


class NotificationOutbox(Protocol):
    """Durable queue of notifications; delivery happens after commit."""

    def enqueue(
        self,
        user_id: str,
        notification_type: str,
        payload: dict[str, object],
        *,
        session: Session,
    ) -> str: ...


class GamificationLedger(Protocol):
    """XP and badge bookkeeping for authors."""

    def award_xp(
        self,
        user_id: str,
        amount: int,
        stat_deltas: dict[str, int],
        *,
        session: Session,
    ) -> UserProgress: ...

    def grant_badge_if_absent(self, user_id: str, badge_id: str, *, session: Session) -> bool: ...
