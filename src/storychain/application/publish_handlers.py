"""Terminal steps of chapter creation: go live now, or open a pull request."""

from __future__ import annotations

import logging
from collections.abc import Callable

from storychain.application.branching import ensure_branch_count_within_limit
from storychain.application.gamification import award_chapter_rewards
from storychain.application.notifications import (
    BADGE_EARNED,
    NEW_BRANCH,
    PR_OPENED,
    STORY_CONTINUED,
    badge_earned_payload,
    chapter_published_payload,
    pull_request_opened_payload,
    unique_recipients,
)
from storychain.domain.models import (
    Chapter,
    ChapterPlacement,
    ChapterStub,
    CreationStatsSnapshot,
    DirectPublishResult,
    PullRequest,
    PullRequestChanges,
    PullRequestGateResult,
    Story,
)
from storychain.domain.ports import (
    ChapterRepository,
    GamificationLedger,
    NotificationOutbox,
    Session,
)
from storychain.domain.roles import can_approve

logger = logging.getLogger(__name__)


def format_pull_request_title(*, chapter_number: int | None, chapter_title: str | None) -> str:
    """Build ``[NEW] Chapter {n}: {title}``, degrading when either part is missing."""
    if chapter_number and chapter_title:
        reference = f"Chapter {chapter_number}: {chapter_title}"
    elif chapter_number:
        reference = f"Chapter {chapter_number}"
    elif chapter_title:
        reference = chapter_title
    else:
        reference = "Chapter"
    return f"[NEW] {reference}"


class DirectPublishHandler:
    """Publishes the chapter and applies every counter, reward, and notification."""

    def __init__(
        self,
        *,
        repository: ChapterRepository,
        ledger: GamificationLedger,
        outbox: NotificationOutbox,
    ) -> None:
        self._repository = repository
        self._ledger = ledger
        self._outbox = outbox

    def handle(
        self,
        *,
        chapter: Chapter,
        story: Story,
        placement: ChapterPlacement,
        user_id: str,
        now_utc: str,
        session: Session,
    ) -> DirectPublishResult:
        parent = placement.parent_chapter
        child_branches = 0
        if not placement.is_root and parent is not None:
            child_branches = self._repository.increment_child_branches(
                parent.chapter_id, session=session
            )
            ensure_branch_count_within_limit(child_branches)

        total_chapters = self._repository.increment_story_stat(
            story.story_id, "total_chapters", session=session
        )
        if not placement.is_root and child_branches > 1:
            self._repository.increment_story_stat(
                story.story_id, "total_branches", session=session
            )
        self._repository.touch_story_activity(story.story_id, now_utc, session=session)

        self._repository.insert_chapter(chapter, session=session)

        xp_awarded, badges_earned = award_chapter_rewards(
            self._ledger, user_id, is_root=placement.is_root, session=session
        )
        self._notify(
            chapter=chapter,
            story=story,
            parent=parent,
            user_id=user_id,
            badges_earned=badges_earned,
            session=session,
        )
        logger.info(
            "chapter.publish.direct chapter_id=%s story_id=%s depth=%s child_branches=%s "
            "xp=%s badges=%s",
            chapter.chapter_id,
            story.story_id,
            chapter.depth,
            child_branches,
            xp_awarded,
            ",".join(badges_earned) or "-",
        )
        return DirectPublishResult(
            chapter=chapter,
            xp_awarded=xp_awarded,
            badges_earned=badges_earned,
            stats=CreationStatsSnapshot(
                total_chapters=total_chapters,
                depth=chapter.depth,
                is_root=placement.is_root,
            ),
        )

    def _notify(
        self,
        *,
        chapter: Chapter,
        story: Story,
        parent: Chapter | None,
        user_id: str,
        badges_earned: tuple[str, ...],
        session: Session,
    ) -> None:
        collaborators = self._repository.list_accepted_collaborators(
            story.story_id, session=session
        )
        recipients = unique_recipients(
            [
                story.creator_id,
                parent.author_id if parent is not None else None,
                *(collaborator.user_id for collaborator in collaborators),
            ],
            exclude=user_id,
        )
        notification_type = STORY_CONTINUED if chapter.is_root else NEW_BRANCH
        payload = chapter_published_payload(story=story, chapter=chapter, actor_id=user_id)
        for recipient in recipients:
            self._outbox.enqueue(recipient, notification_type, payload, session=session)
        for badge_id in badges_earned:
            self._outbox.enqueue(
                user_id,
                BADGE_EARNED,
                badge_earned_payload(badge_id=badge_id, story=story),
                session=session,
            )


class PullRequestGateHandler:
    """Stores the chapter as pending, opens its pull request, and alerts moderators."""

    def __init__(
        self,
        *,
        repository: ChapterRepository,
        outbox: NotificationOutbox,
        id_factory: Callable[[], str],
    ) -> None:
        self._repository = repository
        self._outbox = outbox
        self._id_factory = id_factory

    def handle(
        self,
        *,
        chapter: Chapter,
        story: Story,
        parent_chapter: Chapter | None,
        user_id: str,
        title: str,
        content: str,
        now_utc: str,
        session: Session,
    ) -> PullRequestGateResult:
        self._repository.insert_chapter(chapter, session=session)
        self._repository.increment_story_stat(story.story_id, "total_chapters", session=session)
        self._repository.touch_story_activity(story.story_id, now_utc, session=session)

        pull_request = PullRequest(
            pr_id=self._id_factory(),
            story_id=story.story_id,
            chapter_id=chapter.chapter_id,
            parent_chapter_id=parent_chapter.chapter_id if parent_chapter is not None else None,
            author_id=user_id,
            title=format_pull_request_title(chapter_number=chapter.depth, chapter_title=title),
            description=f"New chapter continuation from Chapter {chapter.depth}",
            changes=PullRequestChanges(proposed=content),
            pr_type="NEW_CHAPTER",
            status="OPEN",
            created_at_utc=now_utc,
        )
        self._repository.insert_pull_request(pull_request, session=session)
        self._repository.link_chapter_pull_request(
            chapter.chapter_id, pull_request.pr_id, session=session
        )

        moderators = self.moderator_ids(story, session=session)
        payload = pull_request_opened_payload(
            story=story, pull_request=pull_request, actor_id=user_id
        )
        for moderator_id in moderators:
            self._outbox.enqueue(moderator_id, PR_OPENED, payload, session=session)

        logger.info(
            "chapter.publish.pull_request chapter_id=%s story_id=%s pr_id=%s moderators=%s",
            chapter.chapter_id,
            story.story_id,
            pull_request.pr_id,
            len(moderators),
        )
        return PullRequestGateResult(
            chapter=ChapterStub(
                chapter_id=chapter.chapter_id,
                story_id=chapter.story_id,
                status=chapter.status,
            ),
            pull_request=pull_request,
        )

    def moderator_ids(self, story: Story, *, session: Session) -> list[str]:
        """Approvers plus the story creator; never empty."""
        collaborators = self._repository.list_accepted_collaborators(
            story.story_id, session=session
        )
        return unique_recipients(
            [
                *(c.user_id for c in collaborators if can_approve(c.role)),
                story.creator_id,
            ]
        )
