"""Input-shape and story-state checks that run before any tree work."""

from __future__ import annotations

import re
from dataclasses import dataclass

from storychain.domain.errors import BadRequestError, NotFoundError, ValidationError
from storychain.domain.models import (
    CONTENT_MAX_LENGTH,
    CONTENT_MIN_LENGTH,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    Story,
)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


@dataclass(frozen=True)
class ChapterCreateInput:
    """Raw request to attach a chapter to a story."""

    story_id: str
    title: str
    content: str
    user_id: str
    parent_chapter_id: str | None = None


def validate_identifier(value: object, *, field_name: str) -> str:
    if not isinstance(value, str) or not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(f"{field_name} is not a valid identifier.")
    return value


def validate_chapter_input(data: ChapterCreateInput) -> ChapterCreateInput:
    """Re-check the transport's preconditions and return a trimmed copy."""
    validate_identifier(data.story_id, field_name="storyId")
    validate_identifier(data.user_id, field_name="userId")
    parent_chapter_id = data.parent_chapter_id or None
    if parent_chapter_id is not None:
        validate_identifier(parent_chapter_id, field_name="parentChapterId")

    if not isinstance(data.title, str):
        raise ValidationError("Title is required.")
    title = data.title.strip()
    if len(title) < TITLE_MIN_LENGTH:
        raise ValidationError("Title is required.")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must not exceed {TITLE_MAX_LENGTH} characters.")

    if not isinstance(data.content, str) or not data.content:
        raise ValidationError("Content is required.")
    content = data.content.strip()
    if len(content) < CONTENT_MIN_LENGTH:
        raise ValidationError(f"Content must be at least {CONTENT_MIN_LENGTH} characters long.")
    if len(content) > CONTENT_MAX_LENGTH:
        raise ValidationError(f"Content must not exceed {CONTENT_MAX_LENGTH} characters.")

    return ChapterCreateInput(
        story_id=data.story_id,
        title=title,
        content=content,
        user_id=data.user_id,
        parent_chapter_id=parent_chapter_id,
    )


def require_writable_story(story: Story | None, *, story_id: str) -> Story:
    if story is None:
        raise NotFoundError(f"Story '{story_id}' not found.")
    if story.status == "DELETED":
        raise BadRequestError("This story has been deleted.")
    return story
