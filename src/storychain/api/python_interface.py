"""Python-first client for the storychain HTTP API."""

from __future__ import annotations

import httpx

from storychain.api.contracts import (
    ChapterCreateRequest,
    ChapterResponse,
    CollaboratorResponse,
    CollaboratorUpsertRequest,
    DirectPublishResponse,
    NotificationResponse,
    PullRequestGateResponse,
    StoryCreateRequest,
    StoryResponse,
    StorySettingsPayload,
)
from storychain.domain.models import CollaboratorStatus
from storychain.domain.roles import StoryRole


class StoryChainClient:
    """Tiny typed API client acting on behalf of one user."""

    def __init__(self, *, user_id: str, api_base_url: str = "http://127.0.0.1:8000") -> None:
        self._user_id = user_id
        self._api_base_url = api_base_url.rstrip("/")

    @property
    def api_base_url(self) -> str:
        """Return normalized API base URL."""
        return self._api_base_url

    @property
    def user_id(self) -> str:
        return self._user_id

    def _headers(self) -> dict[str, str]:
        return {"X-User-Id": self._user_id}

    def create_story(
        self,
        *,
        title: str,
        settings: StorySettingsPayload | None = None,
    ) -> StoryResponse:
        """Create a story owned by this client's user."""
        request = StoryCreateRequest(title=title, settings=settings or StorySettingsPayload())
        response = httpx.post(
            f"{self._api_base_url}/api/v1/stories",
            json=request.model_dump(mode="json"),
            headers=self._headers(),
            timeout=30.0,
        )
        response.raise_for_status()
        return StoryResponse.model_validate(response.json())

    def add_collaborator(
        self,
        *,
        story_id: str,
        user_id: str,
        role: StoryRole = StoryRole.CONTRIBUTOR,
        status: CollaboratorStatus = "ACCEPTED",
    ) -> CollaboratorResponse:
        """Invite or update a collaborator; the server enforces the role hierarchy."""
        request = CollaboratorUpsertRequest(user_id=user_id, role=role, status=status)
        response = httpx.post(
            f"{self._api_base_url}/api/v1/stories/{story_id}/collaborators",
            json=request.model_dump(mode="json"),
            headers=self._headers(),
            timeout=30.0,
        )
        response.raise_for_status()
        return CollaboratorResponse.model_validate(response.json())

    def create_chapter(
        self,
        *,
        story_id: str,
        title: str,
        content: str,
        parent_chapter_id: str | None = None,
    ) -> DirectPublishResponse | PullRequestGateResponse:
        """Submit a chapter; the response says whether it went live or opened a pull request."""
        request = ChapterCreateRequest(
            title=title, content=content, parent_chapter_id=parent_chapter_id
        )
        response = httpx.post(
            f"{self._api_base_url}/api/v1/stories/{story_id}/chapters",
            json=request.model_dump(mode="json"),
            headers=self._headers(),
            timeout=30.0,
        )
        response.raise_for_status()
        payload = response.json()
        if payload.get("mode") == "pull_request":
            return PullRequestGateResponse.model_validate(payload)
        return DirectPublishResponse.model_validate(payload)

    def get_chapter(self, *, chapter_id: str) -> ChapterResponse:
        response = httpx.get(
            f"{self._api_base_url}/api/v1/chapters/{chapter_id}",
            headers=self._headers(),
            timeout=30.0,
        )
        response.raise_for_status()
        return ChapterResponse.model_validate(response.json())

    def notifications(self, *, limit: int = 50) -> list[NotificationResponse]:
        """Fetch this user's most recent notifications."""
        response = httpx.get(
            f"{self._api_base_url}/api/v1/users/{self._user_id}/notifications",
            params={"limit": limit},
            headers=self._headers(),
            timeout=30.0,
        )
        response.raise_for_status()
        return [NotificationResponse.model_validate(row) for row in response.json()]


__all__ = ["StoryChainClient", "StorySettingsPayload"]
