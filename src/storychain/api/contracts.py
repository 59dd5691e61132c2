"""Typed contracts shared by API handlers and Python interfaces."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from storychain.application.validation import IDENTIFIER_PATTERN
from storychain.domain.models import (
    Chapter,
    ChapterStub,
    CollaboratorStatus,
    DirectPublishResult,
    PullRequest,
    PullRequestGateResult,
    Story,
    StoryCollaborator,
    StorySettings,
    UserProgress,
)
from storychain.domain.roles import StoryRole


class ContractModel(BaseModel):
    """Base model config used by all API contracts."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class StorySettingsPayload(ContractModel):
    is_public: bool = True
    allow_branching: bool = True
    require_approval: bool = False
    allow_comments: bool = True
    allow_voting: bool = True

    def to_domain(self) -> StorySettings:
        return StorySettings(**self.model_dump())


class StoryCreateRequest(ContractModel):
    """Create a story; the caller becomes its creator and OWNER."""

    title: str = Field(min_length=1, max_length=200)
    settings: StorySettingsPayload = Field(default_factory=StorySettingsPayload)


class CollaboratorUpsertRequest(ContractModel):
    user_id: str = Field(pattern=IDENTIFIER_PATTERN.pattern)
    role: StoryRole = StoryRole.CONTRIBUTOR
    status: CollaboratorStatus = "ACCEPTED"


class ChapterCreateRequest(ContractModel):
    """Chapter body; length rules are enforced by the creation workflow."""

    title: str = ""
    content: str = ""
    parent_chapter_id: str | None = None


class StoryStatsResponse(ContractModel):
    total_chapters: int
    total_branches: int
    total_reads: int
    total_votes: int
    unique_contributors: int
    average_rating: float


class StoryResponse(ContractModel):
    story_id: str
    creator_id: str
    title: str
    status: str
    settings: StorySettingsPayload
    stats: StoryStatsResponse
    last_activity_at_utc: str | None

    @classmethod
    def from_domain(cls, story: Story) -> StoryResponse:
        stats = story.stats
        return cls(
            story_id=story.story_id,
            creator_id=story.creator_id,
            title=story.title,
            status=story.status,
            settings=StorySettingsPayload(
                is_public=story.settings.is_public,
                allow_branching=story.settings.allow_branching,
                require_approval=story.settings.require_approval,
                allow_comments=story.settings.allow_comments,
                allow_voting=story.settings.allow_voting,
            ),
            stats=StoryStatsResponse(
                total_chapters=stats.total_chapters,
                total_branches=stats.total_branches,
                total_reads=stats.total_reads,
                total_votes=stats.total_votes,
                unique_contributors=stats.unique_contributors,
                average_rating=stats.average_rating,
            ),
            last_activity_at_utc=story.last_activity_at_utc,
        )


class CollaboratorResponse(ContractModel):
    story_id: str
    user_id: str
    role: StoryRole
    status: CollaboratorStatus

    @classmethod
    def from_domain(cls, collaborator: StoryCollaborator) -> CollaboratorResponse:
        return cls(
            story_id=collaborator.story_id,
            user_id=collaborator.user_id,
            role=collaborator.role,
            status=collaborator.status,
        )


class ChapterResponse(ContractModel):
    chapter_id: str
    story_id: str
    parent_chapter_id: str | None
    ancestor_ids: list[str]
    depth: int
    author_id: str
    title: str
    content: str
    status: str
    is_pr: bool
    pr_id: str | None
    review_status: str | None
    child_branches: int
    version: int
    created_at_utc: str

    @classmethod
    def from_domain(cls, chapter: Chapter) -> ChapterResponse:
        return cls(
            chapter_id=chapter.chapter_id,
            story_id=chapter.story_id,
            parent_chapter_id=chapter.parent_chapter_id,
            ancestor_ids=list(chapter.ancestor_ids),
            depth=chapter.depth,
            author_id=chapter.author_id,
            title=chapter.title,
            content=chapter.content,
            status=chapter.status,
            is_pr=chapter.pull_request.is_pr,
            pr_id=chapter.pull_request.pr_id,
            review_status=chapter.pull_request.status,
            child_branches=chapter.stats.child_branches,
            version=chapter.version,
            created_at_utc=chapter.created_at_utc,
        )


class ChapterStubResponse(ContractModel):
    chapter_id: str
    story_id: str
    status: str

    @classmethod
    def from_domain(cls, stub: ChapterStub) -> ChapterStubResponse:
        return cls(chapter_id=stub.chapter_id, story_id=stub.story_id, status=stub.status)


class PullRequestResponse(ContractModel):
    pr_id: str
    story_id: str
    chapter_id: str
    parent_chapter_id: str | None
    author_id: str
    pr_type: str
    title: str
    description: str
    status: str
    created_at_utc: str

    @classmethod
    def from_domain(cls, pull_request: PullRequest) -> PullRequestResponse:
        return cls(
            pr_id=pull_request.pr_id,
            story_id=pull_request.story_id,
            chapter_id=pull_request.chapter_id,
            parent_chapter_id=pull_request.parent_chapter_id,
            author_id=pull_request.author_id,
            pr_type=pull_request.pr_type,
            title=pull_request.title,
            description=pull_request.description,
            status=pull_request.status,
            created_at_utc=pull_request.created_at_utc,
        )


class CreationStatsResponse(ContractModel):
    total_chapters: int
    depth: int
    is_root: bool


class DirectPublishResponse(ContractModel):
    """Chapter went live immediately."""

    mode: Literal["direct"] = "direct"
    chapter: ChapterResponse
    xp_awarded: int
    badges_earned: list[str]
    stats: CreationStatsResponse

    @classmethod
    def from_domain(cls, result: DirectPublishResult) -> DirectPublishResponse:
        return cls(
            chapter=ChapterResponse.from_domain(result.chapter),
            xp_awarded=result.xp_awarded,
            badges_earned=list(result.badges_earned),
            stats=CreationStatsResponse(
                total_chapters=result.stats.total_chapters,
                depth=result.stats.depth,
                is_root=result.stats.is_root,
            ),
        )


class PullRequestGateResponse(ContractModel):
    """Chapter is pending review behind a pull request."""

    mode: Literal["pull_request"] = "pull_request"
    chapter: ChapterStubResponse
    pull_request: PullRequestResponse

    @classmethod
    def from_domain(cls, result: PullRequestGateResult) -> PullRequestGateResponse:
        return cls(
            chapter=ChapterStubResponse.from_domain(result.chapter),
            pull_request=PullRequestResponse.from_domain(result.pull_request),
        )


class NotificationResponse(ContractModel):
    notification_id: str
    user_id: str
    notification_type: str
    payload: dict[str, Any]
    is_read: bool
    delivered_at_utc: str | None
    created_at_utc: str


class UserProgressResponse(ContractModel):
    user_id: str
    xp: int
    chapters_written: int
    branches_created: int
    badges: list[str]

    @classmethod
    def from_domain(cls, progress: UserProgress) -> UserProgressResponse:
        return cls(
            user_id=progress.user_id,
            xp=progress.xp,
            chapters_written=progress.chapters_written,
            branches_created=progress.branches_created,
            badges=sorted(progress.badges),
        )


class ErrorResponse(ContractModel):
    error: str
    detail: str
