"""FastAPI transport for stories, collaborators, and the chapter contribution workflow."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from storychain.adapters.sqlite_session import SQLiteSession
from storychain.adapters.sqlite_workspace import create_sqlite_workspace
from storychain.api.contracts import (
    ChapterCreateRequest,
    ChapterResponse,
    CollaboratorResponse,
    CollaboratorUpsertRequest,
    DirectPublishResponse,
    ErrorResponse,
    NotificationResponse,
    PullRequestGateResponse,
    PullRequestResponse,
    StoryCreateRequest,
    StoryResponse,
    UserProgressResponse,
)
from storychain.application.validation import ChapterCreateInput
from storychain.domain.errors import ChapterWorkflowError, ForbiddenError, NotFoundError
from storychain.domain.models import DirectPublishResult, Story
from storychain.domain.roles import (
    Permission,
    StoryRole,
    can_assign_role,
    has_minimum_role,
    has_permission,
)
from storychain.settings import load_runtime_settings

RETRY_AFTER_SECONDS = 1

ERROR_STATUS_CODES: dict[str, int] = {
    "validation": 422,
    "not_found": 404,
    "bad_request": 400,
    "forbidden": 403,
    "internal": 500,
    "transient": 503,
}

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Simple health payload used by probes."""

    status: Literal["ok"] = "ok"
    service: str = "storychain"


class ApiRootResponse(BaseModel):
    """Describes currently available API capabilities and runtime mode."""

    name: str = "storychain"
    persistence: Literal["sqlite"] = "sqlite"
    auth: Literal["x-user-id-header"] = "x-user-id-header"
    endpoints: list[str] = Field(
        default_factory=lambda: [
            "/healthz",
            "/api/v1",
            "/api/v1/stories",
            "/api/v1/stories/{story_id}",
            "/api/v1/stories/{story_id}/collaborators",
            "/api/v1/stories/{story_id}/chapters",
            "/api/v1/stories/{story_id}/pull-requests",
            "/api/v1/chapters/{chapter_id}",
            "/api/v1/users/{user_id}/notifications",
            "/api/v1/users/{user_id}/progress",
        ]
    )


def _error_response(exc: ChapterWorkflowError) -> JSONResponse:
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(exc.kind, 500),
        content=ErrorResponse(error=exc.kind, detail=exc.message).model_dump(),
        headers=headers,
    )


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create the API application."""
    settings = load_runtime_settings(db_path=db_path)
    workspace = create_sqlite_workspace(settings)
    database = workspace.database
    stories = workspace.stories

    app = FastAPI(
        title="storychain API",
        version="0.1.0",
        description=(
            "Collaborative branching stories. Chapters publish directly or open a pull "
            "request depending on story settings and the author's role."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {"name": "system", "description": "Service health and runtime metadata."},
            {"name": "api", "description": "API discovery and root-level capability listing."},
            {"name": "stories", "description": "Story creation, settings, and collaborators."},
            {"name": "chapters", "description": "Chapter creation and chapter tree reads."},
            {"name": "users", "description": "Per-user notifications and progress."},
        ],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(
        "api.start db_path=%s busy_timeout_seconds=%s max_transaction_seconds=%s",
        settings.db_path,
        settings.busy_timeout_seconds,
        settings.max_transaction_seconds,
    )

    @app.exception_handler(ChapterWorkflowError)
    async def workflow_error_handler(request: Request, exc: ChapterWorkflowError) -> JSONResponse:
        log = logger.warning if exc.kind in {"internal", "transient"} else logger.info
        log(
            "api.error method=%s path=%s kind=%s message=%s",
            request.method,
            request.url.path,
            exc.kind,
            exc.message,
        )
        return _error_response(exc)

    def current_user_id(x_user_id: str | None = Header(default=None)) -> str:
        user_id = (x_user_id or "").strip()
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing X-User-Id header",
            )
        return user_id

    def visible_story_or_404(story_id: str, user_id: str | None, *, session: SQLiteSession) -> Story:
        story = stories.find_story_by_id(story_id, session=session)
        if story is None or story.status == "DELETED":
            raise NotFoundError(f"Story '{story_id}' not found.")
        if story.settings.is_public or user_id == story.creator_id:
            return story
        if user_id and stories.find_accepted_collaborator(story_id, user_id, session=session):
            return story
        raise NotFoundError(f"Story '{story_id}' not found.")

    @app.get("/healthz", response_model=HealthResponse, tags=["system"])
    def healthz() -> HealthResponse:
        return HealthResponse()

    @app.get("/api/v1", response_model=ApiRootResponse, tags=["api"])
    def api_v1_root() -> ApiRootResponse:
        return ApiRootResponse()

    @app.post("/api/v1/stories", response_model=StoryResponse, tags=["stories"], status_code=201)
    def create_story(
        payload: StoryCreateRequest,
        user_id: str = Depends(current_user_id),
    ) -> StoryResponse:
        with database.transaction("create story") as session:
            story = stories.create_story(
                creator_id=user_id,
                title=payload.title,
                settings=payload.settings.to_domain(),
                session=session,
            )
        logger.info("story.created story_id=%s creator_id=%s", story.story_id, user_id)
        return StoryResponse.from_domain(story)

    @app.get("/api/v1/stories/{story_id}", response_model=StoryResponse, tags=["stories"])
    def get_story(
        story_id: str,
        x_user_id: str | None = Header(default=None),
    ) -> StoryResponse:
        with database.read_session("get story") as session:
            story = visible_story_or_404(story_id, x_user_id, session=session)
        return StoryResponse.from_domain(story)

    @app.post(
        "/api/v1/stories/{story_id}/collaborators",
        response_model=CollaboratorResponse,
        tags=["stories"],
        status_code=201,
    )
    def upsert_collaborator(
        story_id: str,
        payload: CollaboratorUpsertRequest,
        user_id: str = Depends(current_user_id),
    ) -> CollaboratorResponse:
        with database.transaction("upsert collaborator") as session:
            story = stories.find_story_by_id(story_id, session=session)
            if story is None or story.status == "DELETED":
                raise NotFoundError(f"Story '{story_id}' not found.")
            if payload.user_id == story.creator_id:
                raise ForbiddenError("The story creator's role cannot be changed.")
            if user_id == story.creator_id:
                inviter_role: StoryRole | None = StoryRole.OWNER
            else:
                inviter = stories.find_accepted_collaborator(story_id, user_id, session=session)
                inviter_role = inviter.role if inviter is not None else None
            if inviter_role is None or not can_assign_role(inviter_role, payload.role):
                raise ForbiddenError(f"You cannot assign the {payload.role.value} role.")
            existing = stories.find_accepted_collaborator(
                story_id, payload.user_id, session=session
            )
            if existing is not None:
                if not has_minimum_role(inviter_role, existing.role):
                    raise ForbiddenError(
                        f"You cannot change a collaborator with the {existing.role.value} role."
                    )
                if existing.role is not payload.role and not has_permission(
                    inviter_role, Permission.CHANGE_PERMISSIONS
                ):
                    raise ForbiddenError("You cannot change collaborator roles.")
            if payload.status in ("REMOVED", "DECLINED") and not has_permission(
                inviter_role, Permission.REMOVE_COLLABORATORS
            ):
                raise ForbiddenError("You cannot remove collaborators.")
            collaborator = stories.upsert_collaborator(
                story_id=story_id,
                user_id=payload.user_id,
                role=payload.role,
                status=payload.status,
                session=session,
            )
        logger.info(
            "story.collaborator story_id=%s user_id=%s role=%s status=%s by=%s",
            story_id,
            payload.user_id,
            payload.role.value,
            payload.status,
            user_id,
        )
        return CollaboratorResponse.from_domain(collaborator)

    @app.post(
        "/api/v1/stories/{story_id}/chapters",
        response_model=DirectPublishResponse | PullRequestGateResponse,
        tags=["chapters"],
        status_code=201,
    )
    def create_chapter(
        story_id: str,
        payload: ChapterCreateRequest,
        user_id: str = Depends(current_user_id),
    ) -> DirectPublishResponse | PullRequestGateResponse:
        result = workspace.chapters.create_chapter(
            ChapterCreateInput(
                story_id=story_id,
                title=payload.title,
                content=payload.content,
                user_id=user_id,
                parent_chapter_id=payload.parent_chapter_id or None,
            )
        )
        if isinstance(result, DirectPublishResult):
            return DirectPublishResponse.from_domain(result)
        return PullRequestGateResponse.from_domain(result)

    @app.get(
        "/api/v1/stories/{story_id}/chapters",
        response_model=list[ChapterResponse],
        tags=["chapters"],
    )
    def list_chapters(
        story_id: str,
        x_user_id: str | None = Header(default=None),
    ) -> list[ChapterResponse]:
        with database.read_session("list chapters") as session:
            story = visible_story_or_404(story_id, x_user_id, session=session)
            chapters = stories.list_chapters(story.story_id, session=session)
        return [ChapterResponse.from_domain(chapter) for chapter in chapters]

    @app.get(
        "/api/v1/stories/{story_id}/pull-requests",
        response_model=list[PullRequestResponse],
        tags=["chapters"],
    )
    def list_pull_requests(
        story_id: str,
        x_user_id: str | None = Header(default=None),
    ) -> list[PullRequestResponse]:
        with database.read_session("list pull requests") as session:
            story = visible_story_or_404(story_id, x_user_id, session=session)
            pull_requests = stories.list_pull_requests(story.story_id, session=session)
        return [PullRequestResponse.from_domain(pull_request) for pull_request in pull_requests]

    @app.get("/api/v1/chapters/{chapter_id}", response_model=ChapterResponse, tags=["chapters"])
    def get_chapter(
        chapter_id: str,
        x_user_id: str | None = Header(default=None),
    ) -> ChapterResponse:
        with database.read_session("get chapter") as session:
            chapter = stories.find_chapter_by_id(chapter_id, session=session)
            if chapter is None or chapter.status == "DELETED":
                raise NotFoundError(f"Chapter '{chapter_id}' not found.")
            visible_story_or_404(chapter.story_id, x_user_id, session=session)
        return ChapterResponse.from_domain(chapter)

    @app.get(
        "/api/v1/users/{user_id}/notifications",
        response_model=list[NotificationResponse],
        tags=["users"],
    )
    def list_notifications(
        user_id: str,
        limit: int = Query(default=50, ge=1, le=200),
        caller_id: str = Depends(current_user_id),
    ) -> list[NotificationResponse]:
        if caller_id != user_id:
            raise ForbiddenError("You can only read your own notifications.")
        with database.read_session("list notifications") as session:
            rows = workspace.outbox.list_for_user(user_id, session=session, limit=limit)
        return [
            NotificationResponse(
                notification_id=row.notification_id,
                user_id=row.user_id,
                notification_type=row.notification_type,
                payload=row.payload,
                is_read=row.is_read,
                delivered_at_utc=row.delivered_at_utc,
                created_at_utc=row.created_at_utc,
            )
            for row in rows
        ]

    @app.get(
        "/api/v1/users/{user_id}/progress",
        response_model=UserProgressResponse,
        tags=["users"],
    )
    def get_progress(user_id: str) -> UserProgressResponse:
        with database.read_session("get progress") as session:
            progress = workspace.gamification.get_progress(user_id, session=session)
        return UserProgressResponse.from_domain(progress)

    return app


app = create_app()
