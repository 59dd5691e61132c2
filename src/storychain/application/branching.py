"""Story-level and structural limits on where a branch may attach."""

from __future__ import annotations

from storychain.domain.errors import ForbiddenError, ValidationError
from storychain.domain.models import MAX_BRANCHES_PER_CHAPTER, MAX_DEPTH, Chapter, StorySettings


def validate_branch_attachment(settings: StorySettings, parent_chapter: Chapter) -> None:
    """Reject a branch before any write; the first failing check wins."""
    if not settings.allow_branching:
        raise ForbiddenError("Branching is not allowed for this story.")
    if parent_chapter.depth >= MAX_DEPTH:
        raise ValidationError(f"Maximum story depth ({MAX_DEPTH}) reached.")
    if parent_chapter.stats.child_branches >= MAX_BRANCHES_PER_CHAPTER:
        raise ValidationError(
            f"Maximum branches ({MAX_BRANCHES_PER_CHAPTER}) reached for this chapter."
        )


def ensure_branch_count_within_limit(child_branches: int) -> None:
    """Post-increment re-check; a concurrent writer may have slipped past the pre-check."""
    if child_branches > MAX_BRANCHES_PER_CHAPTER:
        raise ValidationError(
            f"Maximum branches ({MAX_BRANCHES_PER_CHAPTER}) reached for this chapter."
        )
