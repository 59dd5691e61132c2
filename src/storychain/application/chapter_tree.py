"""Placement of a new chapter inside its story's tree."""

from __future__ import annotations

import logging

from storychain.domain.errors import NotFoundError, ValidationError
from storychain.domain.models import ChapterPlacement
from storychain.domain.ports import ChapterRepository, Session

logger = logging.getLogger(__name__)


class ChapterTreeReader:
    """Computes root/branch status, ancestry, and depth without writing anything."""

    def __init__(self, repository: ChapterRepository) -> None:
        self._repository = repository

    def read_placement(
        self,
        *,
        story_id: str,
        parent_chapter_id: str | None,
        session: Session,
    ) -> ChapterPlacement:
        if not parent_chapter_id:
            return self._root_placement(story_id=story_id, session=session)
        return self._branch_placement(
            story_id=story_id, parent_chapter_id=parent_chapter_id, session=session
        )

    def _root_placement(self, *, story_id: str, session: Session) -> ChapterPlacement:
        existing_root = self._repository.find_root_chapter(story_id, session=session)
        if existing_root is not None:
            raise ValidationError("Root chapter already exists for this story.")
        return ChapterPlacement(is_root=True, ancestor_ids=(), depth=0, parent_chapter=None)

    def _branch_placement(
        self, *, story_id: str, parent_chapter_id: str, session: Session
    ) -> ChapterPlacement:
        parent = self._repository.find_chapter_by_id(parent_chapter_id, session=session)
        if parent is None or parent.story_id != story_id:
            logger.info(
                "chapter.tree.parent_missing story_id=%s parent_chapter_id=%s found=%s",
                story_id,
                parent_chapter_id,
                parent is not None,
            )
            raise NotFoundError("Parent chapter not found in this story.")
        if parent.status == "DELETED":
            raise ValidationError("Cannot branch from a deleted chapter.")

        ancestor_ids = (*parent.ancestor_ids, parent.chapter_id)
        return ChapterPlacement(
            is_root=False,
            ancestor_ids=ancestor_ids,
            depth=len(ancestor_ids),
            parent_chapter=parent,
        )
