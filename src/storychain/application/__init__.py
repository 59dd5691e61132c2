"""Application services for the chapter contribution workflow."""

from storychain.application.chapter_creation import ChapterCreationService
from storychain.application.validation import ChapterCreateInput

__all__ = ["ChapterCreateInput", "ChapterCreationService"]
