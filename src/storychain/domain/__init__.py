"""Domain models, roles, errors, and ports for collaborative chapter trees."""

from storychain.domain.errors import (
    BadRequestError,
    ChapterWorkflowError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from storychain.domain.models import (
    Chapter,
    ChapterCreationResult,
    ChapterPlacement,
    DirectPublishResult,
    PublishMode,
    PullRequest,
    PullRequestGateResult,
    Story,
    StoryCollaborator,
    StorySettings,
)
from storychain.domain.ports import (
    ChapterRepository,
    GamificationLedger,
    NotificationOutbox,
    TransactionManager,
)
from storychain.domain.roles import Permission, StoryRole

__all__ = [
    "BadRequestError",
    "Chapter",
    "ChapterCreationResult",
    "ChapterPlacement",
    "ChapterRepository",
    "ChapterWorkflowError",
    "DirectPublishResult",
    "ForbiddenError",
    "GamificationLedger",
    "InternalError",
    "NotFoundError",
    "NotificationOutbox",
    "Permission",
    "PublishMode",
    "PullRequest",
    "PullRequestGateResult",
    "Story",
    "StoryCollaborator",
    "StoryRole",
    "StorySettings",
    "TransactionManager",
    "TransientError",
    "ValidationError",
]
