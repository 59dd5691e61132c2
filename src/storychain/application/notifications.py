"""Notification payloads produced by chapter creation.

Titles and messages wrap names in ``[[kind:text]]`` markers that clients turn
into styled spans.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Final, Literal

from storychain.domain.models import Chapter, PullRequest, Story

NotificationType = Literal["NEW_BRANCH", "STORY_CONTINUED", "BADGE_EARNED", "PR_OPENED"]
HighlightKind = Literal["actor", "story", "chapter", "pr", "badge"]

NEW_BRANCH: Final = "NEW_BRANCH"
STORY_CONTINUED: Final = "STORY_CONTINUED"
BADGE_EARNED: Final = "BADGE_EARNED"
PR_OPENED: Final = "PR_OPENED"


def highlight(text: str | None, kind: HighlightKind = "actor") -> str:
    return f"[[{kind}:{text}]]" if text else ""


def unique_recipients(candidates: Iterable[str | None], *, exclude: str | None = None) -> list[str]:
    """Deduplicate while keeping first-seen order."""
    recipients: list[str] = []
    seen: set[str] = set()
    for user_id in candidates:
        if not user_id or user_id == exclude or user_id in seen:
            continue
        seen.add(user_id)
        recipients.append(user_id)
    return recipients


def chapter_published_payload(*, story: Story, chapter: Chapter, actor_id: str) -> dict[str, object]:
    actor = highlight(actor_id, "actor")
    story_name = highlight(story.title, "story")
    if chapter.is_root:
        title = f"{actor} continued your story"
        message = f"{actor} added a new chapter to {story_name}."
        action_url = f"/story/{story.story_id}/chapter/{chapter.chapter_id}"
    else:
        title = f"{actor} created a new branch"
        message = f"{actor} added a new branch to {story_name}."
        action_url = f"/story/{story.story_id}"
    return {
        "title": title,
        "message": message,
        "action_url": action_url,
        "related_story_id": story.story_id,
        "related_chapter_id": chapter.chapter_id,
        "related_user_id": actor_id,
    }


def badge_earned_payload(*, badge_id: str, story: Story) -> dict[str, object]:
    return {
        "title": "You earned a new badge",
        "message": f"You unlocked the {highlight(badge_id, 'badge')} badge.",
        "action_url": "/profile/badges",
        "related_story_id": story.story_id,
        "badge_id": badge_id,
    }


def pull_request_opened_payload(
    *, story: Story, pull_request: PullRequest, actor_id: str
) -> dict[str, object]:
    actor = highlight(actor_id, "actor")
    return {
        "title": f"{actor} opened a pull request",
        "message": (
            f"{actor} created a pull request {highlight(pull_request.title, 'pr')} "
            f"on {highlight(story.title, 'story')}."
        ),
        "action_url": f"/story/{story.story_id}/pr/{pull_request.pr_id}",
        "related_story_id": story.story_id,
        "related_chapter_id": pull_request.chapter_id,
        "related_user_id": actor_id,
        "pull_request_id": pull_request.pr_id,
    }
