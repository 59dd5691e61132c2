"""Story collaborator roles, their ranking, and the permissions each one grants."""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class StoryRole(StrEnum):
    OWNER = "OWNER"
    CO_AUTHOR = "CO_AUTHOR"
    MODERATOR = "MODERATOR"
    REVIEWER = "REVIEWER"
    CONTRIBUTOR = "CONTRIBUTOR"


class Permission(StrEnum):
    EDIT_STORY_SETTINGS = "EDIT_STORY_SETTINGS"
    DELETE_STORY = "DELETE_STORY"
    ARCHIVE_STORY = "ARCHIVE_STORY"
    WRITE_CHAPTERS = "WRITE_CHAPTERS"
    EDIT_ANY_CHAPTER = "EDIT_ANY_CHAPTER"
    DELETE_ANY_CHAPTER = "DELETE_ANY_CHAPTER"
    APPROVE_PULL_REQUESTS = "APPROVE_PULL_REQUESTS"
    REJECT_PULL_REQUESTS = "REJECT_PULL_REQUESTS"
    REVIEW_PULL_REQUESTS = "REVIEW_PULL_REQUESTS"
    MERGE_PULL_REQUESTS = "MERGE_PULL_REQUESTS"
    INVITE_COLLABORATORS = "INVITE_COLLABORATORS"
    REMOVE_COLLABORATORS = "REMOVE_COLLABORATORS"
    CHANGE_PERMISSIONS = "CHANGE_PERMISSIONS"
    MODERATE_COMMENTS = "MODERATE_COMMENTS"
    DELETE_COMMENTS = "DELETE_COMMENTS"
    BAN_FROM_STORY = "BAN_FROM_STORY"
    VIEW_STORY_ANALYTICS = "VIEW_STORY_ANALYTICS"


ROLE_RANK: Final[dict[StoryRole, int]] = {
    StoryRole.CONTRIBUTOR: 0,
    StoryRole.REVIEWER: 1,
    StoryRole.MODERATOR: 2,
    StoryRole.CO_AUTHOR: 3,
    StoryRole.OWNER: 4,
}

_PULL_REQUEST_DECISIONS: Final = frozenset(
    {
        Permission.APPROVE_PULL_REQUESTS,
        Permission.REJECT_PULL_REQUESTS,
        Permission.REVIEW_PULL_REQUESTS,
        Permission.MERGE_PULL_REQUESTS,
    }
)
_COMMENT_MODERATION: Final = frozenset(
    {
        Permission.MODERATE_COMMENTS,
        Permission.DELETE_COMMENTS,
        Permission.BAN_FROM_STORY,
    }
)

ROLE_PERMISSIONS: Final[dict[StoryRole, frozenset[Permission]]] = {
    StoryRole.OWNER: frozenset(Permission),
    StoryRole.CO_AUTHOR: frozenset(Permission)
    - {
        Permission.DELETE_STORY,
        Permission.REMOVE_COLLABORATORS,
        Permission.CHANGE_PERMISSIONS,
    },
    StoryRole.MODERATOR: frozenset({Permission.WRITE_CHAPTERS})
    | _PULL_REQUEST_DECISIONS
    | _COMMENT_MODERATION,
    StoryRole.REVIEWER: frozenset({Permission.WRITE_CHAPTERS, Permission.REVIEW_PULL_REQUESTS}),
    StoryRole.CONTRIBUTOR: frozenset({Permission.WRITE_CHAPTERS}),
}


def permissions(role: StoryRole) -> frozenset[Permission]:
    """Return the full permission set granted by ``role``."""
    return ROLE_PERMISSIONS[role]


def role_rank(role: StoryRole) -> int:
    return ROLE_RANK[role]


def has_permission(role: StoryRole, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS[role]


def can_approve(role: StoryRole) -> bool:
    """True when the role may approve pull requests and so bypasses the review gate."""
    return has_permission(role, Permission.APPROVE_PULL_REQUESTS)


def has_minimum_role(role: StoryRole, required: StoryRole) -> bool:
    return ROLE_RANK[role] >= ROLE_RANK[required]


def can_assign_role(assigner: StoryRole, assignee: StoryRole) -> bool:
    """An inviter may only hand out roles at or below their own rank."""
    return has_permission(assigner, Permission.INVITE_COLLABORATORS) and has_minimum_role(
        assigner, assignee
    )
