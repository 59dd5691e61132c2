"""XP rewards and badge thresholds evaluated when a chapter goes live."""

from __future__ import annotations

from typing import Final

from storychain.domain.models import UserProgress
from storychain.domain.ports import GamificationLedger, Session

XP_CREATE_ROOT_CHAPTER: Final = 50
XP_CREATE_BRANCH_CHAPTER: Final = 20

BADGE_STORY_STARTER: Final = "STORY_STARTER"
BADGE_BRANCH_CREATOR: Final = "BRANCH_CREATOR"
BRANCH_CREATOR_THRESHOLD: Final = 10


def chapter_xp_reward(*, is_root: bool) -> int:
    return XP_CREATE_ROOT_CHAPTER if is_root else XP_CREATE_BRANCH_CHAPTER


def chapter_stat_deltas(*, is_root: bool) -> dict[str, int]:
    return {"chapters_written": 1, "branches_created": 0 if is_root else 1}


def eligible_chapter_badges(progress: UserProgress, *, is_root: bool) -> list[str]:
    """Badges the author qualifies for after this chapter, held or not."""
    if is_root:
        return [BADGE_STORY_STARTER]
    if progress.branches_created >= BRANCH_CREATOR_THRESHOLD:
        return [BADGE_BRANCH_CREATOR]
    return []


def award_chapter_rewards(
    ledger: GamificationLedger,
    user_id: str,
    *,
    is_root: bool,
    session: Session,
) -> tuple[int, tuple[str, ...]]:
    """Credit XP and stats, then grant any newly reached badges."""
    xp_awarded = chapter_xp_reward(is_root=is_root)
    progress = ledger.award_xp(
        user_id,
        xp_awarded,
        chapter_stat_deltas(is_root=is_root),
        session=session,
    )
    earned = [
        badge
        for badge in eligible_chapter_badges(progress, is_root=is_root)
        if ledger.grant_badge_if_absent(user_id, badge, session=session)
    ]
    return xp_awarded, tuple(earned)
