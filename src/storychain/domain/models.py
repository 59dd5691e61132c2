"""Core story, chapter, and pull-request domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final, Literal

from storychain.domain.roles import StoryRole

StoryStatus = Literal["DRAFT", "PUBLISHED", "ARCHIVED", "DELETED"]
ChapterStatus = Literal["PUBLISHED", "PENDING_APPROVAL", "REJECTED", "DELETED"]
ChapterReviewStatus = Literal["PENDING", "APPROVED"]
PullRequestStatus = Literal["OPEN", "APPROVED", "REJECTED", "CLOSED", "MERGED"]
PullRequestType = Literal["NEW_CHAPTER"]
CollaboratorStatus = Literal["PENDING", "ACCEPTED", "DECLINED", "REMOVED"]
StoryStatField = Literal["total_chapters", "total_branches"]

MAX_DEPTH: Final = 50
MAX_BRANCHES_PER_CHAPTER: Final = 10
TITLE_MIN_LENGTH: Final = 1
TITLE_MAX_LENGTH: Final = 200
CONTENT_MIN_LENGTH: Final = 50
CONTENT_MAX_LENGTH: Final = 10_000


@dataclass(frozen=True)
class StorySettings:
    """Owner-controlled switches that shape how a story accepts contributions."""

    is_public: bool = True
    allow_branching: bool = True
    require_approval: bool = False
    allow_comments: bool = True
    allow_voting: bool = True


@dataclass(frozen=True)
class StoryStats:
    total_chapters: int = 0
    total_branches: int = 0
    total_reads: int = 0
    total_votes: int = 0
    unique_contributors: int = 0
    average_rating: float = 0.0


@dataclass(frozen=True)
class Story:
    """A collaboratively written story whose chapters form one rooted tree."""

    story_id: str
    creator_id: str
    title: str
    settings: StorySettings = field(default_factory=StorySettings)
    stats: StoryStats = field(default_factory=StoryStats)
    status: StoryStatus = "PUBLISHED"
    last_activity_at_utc: str | None = None


@dataclass(frozen=True)
class ChapterStats:
    reads: int = 0
    comments: int = 0
    child_branches: int = 0


@dataclass(frozen=True)
class ChapterVotes:
    upvotes: int = 0
    downvotes: int = 0
    score: int = 0


@dataclass(frozen=True)
class ChapterReview:
    """Review-gate link stored on the chapter itself."""

    is_pr: bool = False
    pr_id: str | None = None
    status: ChapterReviewStatus | None = None
    submitted_at_utc: str | None = None


@dataclass(frozen=True)
class Chapter:
    """One node in a story's chapter tree.

    ``ancestor_ids`` is denormalized (root first, immediate parent last) so that
    ancestry reads never need a recursive walk; ``depth`` always equals its length.
    """

    chapter_id: str
    story_id: str
    parent_chapter_id: str | None
    ancestor_ids: tuple[str, ...]
    depth: int
    author_id: str
    title: str
    content: str
    status: ChapterStatus
    pull_request: ChapterReview = field(default_factory=ChapterReview)
    stats: ChapterStats = field(default_factory=ChapterStats)
    votes: ChapterVotes = field(default_factory=ChapterVotes)
    version: int = 1
    is_ending: bool = False
    report_count: int = 0
    is_flagged: bool = False
    created_at_utc: str = ""

    @property
    def is_root(self) -> bool:
        return self.parent_chapter_id is None


@dataclass(frozen=True)
class PullRequestChanges:
    proposed: str


@dataclass(frozen=True)
class PullRequest:
    """Review request opened when a contribution must pass the approval gate."""

    pr_id: str
    story_id: str
    chapter_id: str
    parent_chapter_id: str | None
    author_id: str
    title: str
    description: str
    changes: PullRequestChanges
    pr_type: PullRequestType = "NEW_CHAPTER"
    status: PullRequestStatus = "OPEN"
    created_at_utc: str = ""


@dataclass(frozen=True)
class StoryCollaborator:
    story_id: str
    user_id: str
    role: StoryRole
    status: CollaboratorStatus = "PENDING"


@dataclass(frozen=True)
class ChapterVersion:
    """Immutable content snapshot; creation always writes version 1."""

    version_id: str
    chapter_id: str
    version: int
    title: str
    content: str
    changes_summary: str
    edited_by: str
    pr_id: str | None = None
    created_at_utc: str = ""


@dataclass(frozen=True)
class UserProgress:
    user_id: str
    xp: int = 0
    chapters_written: int = 0
    branches_created: int = 0
    badges: frozenset[str] = frozenset()


@dataclass(frozen=True)
class ChapterPlacement:
    """Where a new chapter lands in the story tree."""

    is_root: bool
    ancestor_ids: tuple[str, ...]
    depth: int
    parent_chapter: Chapter | None = None


@dataclass(frozen=True)
class PublishMode:
    status: ChapterStatus
    is_pr: bool


DIRECT_PUBLISH: Final = PublishMode(status="PUBLISHED", is_pr=False)
PULL_REQUEST_GATE: Final = PublishMode(status="PENDING_APPROVAL", is_pr=True)


@dataclass(frozen=True)
class CreationStatsSnapshot:
    total_chapters: int
    depth: int
    is_root: bool


@dataclass(frozen=True)
class DirectPublishResult:
    """Outcome of a chapter that went live immediately."""

    chapter: Chapter
    xp_awarded: int
    badges_earned: tuple[str, ...]
    stats: CreationStatsSnapshot


@dataclass(frozen=True)
class ChapterStub:
    chapter_id: str
    story_id: str
    status: ChapterStatus


@dataclass(frozen=True)
class PullRequestGateResult:
    """Outcome of a chapter held back for review."""

    chapter: ChapterStub
    pull_request: PullRequest


ChapterCreationResult = DirectPublishResult | PullRequestGateResult
