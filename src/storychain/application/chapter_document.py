"""Assembles the chapter record a handler will persist."""

from __future__ import annotations

from storychain.domain.models import (
    Chapter,
    ChapterPlacement,
    ChapterReview,
    ChapterStats,
    ChapterVotes,
    PublishMode,
)


def build_chapter_document(
    *,
    chapter_id: str,
    story_id: str,
    placement: ChapterPlacement,
    author_id: str,
    title: str,
    content: str,
    publish_mode: PublishMode,
    created_at_utc: str,
) -> Chapter:
    """Return a fresh version-1 chapter with zeroed counters.

    Length bounds are enforced upstream; this only trims.
    """
    parent = placement.parent_chapter
    review = ChapterReview(
        is_pr=publish_mode.is_pr,
        pr_id=None,
        status="PENDING" if publish_mode.is_pr else "APPROVED",
        submitted_at_utc=created_at_utc if publish_mode.is_pr else None,
    )
    return Chapter(
        chapter_id=chapter_id,
        story_id=story_id,
        parent_chapter_id=None if placement.is_root or parent is None else parent.chapter_id,
        ancestor_ids=tuple(placement.ancestor_ids),
        depth=placement.depth,
        author_id=author_id,
        title=title.strip(),
        content=content.strip(),
        status=publish_mode.status,
        pull_request=review,
        stats=ChapterStats(),
        votes=ChapterVotes(),
        version=1,
        created_at_utc=created_at_utc,
    )
