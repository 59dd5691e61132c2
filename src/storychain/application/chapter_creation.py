"""Transactional chapter creation pipeline."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

from storychain.application.branching import validate_branch_attachment
from storychain.application.chapter_document import build_chapter_document
from storychain.application.chapter_tree import ChapterTreeReader
from storychain.application.publish_handlers import DirectPublishHandler, PullRequestGateHandler
from storychain.application.publish_mode import CollaboratorLookup, resolve_publish_mode
from storychain.application.validation import (
    ChapterCreateInput,
    require_writable_story,
    validate_chapter_input,
)
from storychain.domain.errors import ForbiddenError
from storychain.domain.models import (
    ChapterCreationResult,
    ChapterPlacement,
    ChapterVersion,
    PullRequestGateResult,
    Story,
)
from storychain.domain.ports import (
    ChapterRepository,
    GamificationLedger,
    NotificationOutbox,
    TransactionManager,
)
from storychain.domain.roles import Permission, has_permission

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid4().hex


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ChapterCreationService:
    """Validates, places, and publishes one chapter inside a single transaction.

    Collaborators are injected so tests and alternative stores can substitute
    their own implementations. Any failure rolls the transaction back and is
    re-raised as-is.
    """

    def __init__(
        self,
        *,
        transactions: TransactionManager,
        repository: ChapterRepository,
        outbox: NotificationOutbox,
        ledger: GamificationLedger,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], str] = _utc_now_iso,
    ) -> None:
        self._transactions = transactions
        self._repository = repository
        self._id_factory = id_factory
        self._clock = clock
        self._tree_reader = ChapterTreeReader(repository)
        self._direct_handler = DirectPublishHandler(
            repository=repository, ledger=ledger, outbox=outbox
        )
        self._pull_request_handler = PullRequestGateHandler(
            repository=repository, outbox=outbox, id_factory=id_factory
        )

    def create_chapter(self, request: ChapterCreateInput) -> ChapterCreationResult:
        started = time.perf_counter()
        data = validate_chapter_input(request)
        logger.info(
            "chapter.create.start story_id=%s parent_chapter_id=%s user_id=%s",
            data.story_id,
            data.parent_chapter_id,
            data.user_id,
        )
        with self._transactions.transaction("create chapter") as session:
            story = require_writable_story(
                self._repository.find_story_by_id(data.story_id, session=session),
                story_id=data.story_id,
            )
            placement = self._tree_reader.read_placement(
                story_id=story.story_id,
                parent_chapter_id=data.parent_chapter_id,
                session=session,
            )
            if not placement.is_root and placement.parent_chapter is not None:
                validate_branch_attachment(story.settings, placement.parent_chapter)

            collaborators = CollaboratorLookup(
                self._repository, story_id=story.story_id, session=session
            )
            self._authorize(story, data.user_id, placement=placement, collaborators=collaborators)

            publish_mode = resolve_publish_mode(
                story,
                data.user_id,
                is_root_chapter=placement.is_root,
                collaborators=collaborators,
            )
            now_utc = self._clock()
            chapter = build_chapter_document(
                chapter_id=self._id_factory(),
                story_id=story.story_id,
                placement=placement,
                author_id=data.user_id,
                title=data.title,
                content=data.content,
                publish_mode=publish_mode,
                created_at_utc=now_utc,
            )

            result: ChapterCreationResult
            if publish_mode.is_pr:
                result = self._pull_request_handler.handle(
                    chapter=chapter,
                    story=story,
                    parent_chapter=placement.parent_chapter,
                    user_id=data.user_id,
                    title=chapter.title,
                    content=chapter.content,
                    now_utc=now_utc,
                    session=session,
                )
            else:
                result = self._direct_handler.handle(
                    chapter=chapter,
                    story=story,
                    placement=placement,
                    user_id=data.user_id,
                    now_utc=now_utc,
                    session=session,
                )

            self._repository.insert_chapter_version(
                ChapterVersion(
                    version_id=self._id_factory(),
                    chapter_id=chapter.chapter_id,
                    version=1,
                    title=chapter.title,
                    content=chapter.content,
                    changes_summary="First Chapter",
                    edited_by=chapter.author_id,
                    pr_id=(
                        result.pull_request.pr_id
                        if isinstance(result, PullRequestGateResult)
                        else None
                    ),
                    created_at_utc=now_utc,
                ),
                session=session,
            )

        logger.info(
            "chapter.create.done chapter_id=%s story_id=%s mode=%s depth=%s elapsed_ms=%.1f",
            chapter.chapter_id,
            story.story_id,
            "pull_request" if publish_mode.is_pr else "direct",
            chapter.depth,
            (time.perf_counter() - started) * 1000,
        )
        return result

    @staticmethod
    def _authorize(
        story: Story,
        user_id: str,
        *,
        placement: ChapterPlacement,
        collaborators: CollaboratorLookup,
    ) -> None:
        if placement.is_root:
            if user_id != story.creator_id:
                raise ForbiddenError("Only the story creator can add the root chapter.")
            return
        if user_id == story.creator_id:
            return
        collaborator = collaborators.accepted(user_id)
        if collaborator is None or not has_permission(
            collaborator.role, Permission.WRITE_CHAPTERS
        ):
            raise ForbiddenError("Only story collaborators can add chapters.")
