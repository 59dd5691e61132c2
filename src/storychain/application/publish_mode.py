"""Decides whether a new chapter goes live or waits behind a pull request."""

from __future__ import annotations

from storychain.domain.models import (
    DIRECT_PUBLISH,
    PULL_REQUEST_GATE,
    PublishMode,
    Story,
    StoryCollaborator,
)
from storychain.domain.ports import ChapterRepository, Session
from storychain.domain.roles import can_approve

_UNSET = object()


class CollaboratorLookup:
    """Per-call memo over accepted-collaborator reads for one story and session."""

    def __init__(self, repository: ChapterRepository, *, story_id: str, session: Session) -> None:
        self._repository = repository
        self._story_id = story_id
        self._session = session
        self._cache: dict[str, StoryCollaborator | None] = {}

    def accepted(self, user_id: str) -> StoryCollaborator | None:
        cached = self._cache.get(user_id, _UNSET)
        if cached is _UNSET:
            cached = self._repository.find_accepted_collaborator(
                self._story_id, user_id, session=self._session
            )
            self._cache[user_id] = cached
        return cached  # type: ignore[return-value]

    def can_approve(self, user_id: str) -> bool:
        collaborator = self.accepted(user_id)
        return collaborator is not None and can_approve(collaborator.role)


def resolve_publish_mode(
    story: Story,
    user_id: str,
    *,
    is_root_chapter: bool,
    collaborators: CollaboratorLookup,
) -> PublishMode:
    """First matching rule wins; only the final fallthrough opens a pull request."""
    if is_root_chapter:
        return DIRECT_PUBLISH
    if not story.settings.require_approval:
        return DIRECT_PUBLISH
    if user_id == story.creator_id:
        return DIRECT_PUBLISH
    if collaborators.can_approve(user_id):
        return DIRECT_PUBLISH
    return PULL_REQUEST_GATE
