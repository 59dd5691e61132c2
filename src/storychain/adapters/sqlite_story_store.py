"""SQLite-backed persistence for stories, chapter trees, collaborators, and pull requests."""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from typing import Final
from uuid import uuid4

from storychain.adapters.sqlite_session import SQLiteDatabase, SQLiteSession, sqlite_errors
from storychain.domain.errors import InternalError, NotFoundError
from storychain.domain.models import (
    Chapter,
    ChapterReview,
    ChapterStats,
    ChapterVersion,
    ChapterVotes,
    CollaboratorStatus,
    PullRequest,
    PullRequestChanges,
    Story,
    StoryCollaborator,
    StorySettings,
    StoryStatField,
    StoryStats,
    StoryStatus,
)
from storychain.domain.roles import StoryRole

_STORY_STAT_COLUMNS: Final = frozenset({"total_chapters", "total_branches"})

_SCHEMA: Final = [
    """
    CREATE TABLE IF NOT EXISTS stories (
        story_id TEXT PRIMARY KEY,
        creator_id TEXT NOT NULL,
        title TEXT NOT NULL,
        is_public INTEGER NOT NULL,
        allow_branching INTEGER NOT NULL,
        require_approval INTEGER NOT NULL,
        allow_comments INTEGER NOT NULL,
        allow_voting INTEGER NOT NULL,
        total_chapters INTEGER NOT NULL DEFAULT 0,
        total_branches INTEGER NOT NULL DEFAULT 0,
        total_reads INTEGER NOT NULL DEFAULT 0,
        total_votes INTEGER NOT NULL DEFAULT 0,
        unique_contributors INTEGER NOT NULL DEFAULT 0,
        average_rating REAL NOT NULL DEFAULT 0,
        status TEXT NOT NULL,
        last_activity_at_utc TEXT,
        created_at_utc TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chapters (
        chapter_id TEXT PRIMARY KEY,
        story_id TEXT NOT NULL,
        parent_chapter_id TEXT,
        ancestor_ids_json TEXT NOT NULL,
        depth INTEGER NOT NULL,
        author_id TEXT NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        status TEXT NOT NULL,
        is_pr INTEGER NOT NULL,
        pr_id TEXT,
        review_status TEXT,
        submitted_at_utc TEXT,
        reads INTEGER NOT NULL DEFAULT 0,
        comments INTEGER NOT NULL DEFAULT 0,
        child_branches INTEGER NOT NULL DEFAULT 0,
        upvotes INTEGER NOT NULL DEFAULT 0,
        downvotes INTEGER NOT NULL DEFAULT 0,
        score INTEGER NOT NULL DEFAULT 0,
        version INTEGER NOT NULL DEFAULT 1,
        is_ending INTEGER NOT NULL DEFAULT 0,
        report_count INTEGER NOT NULL DEFAULT 0,
        is_flagged INTEGER NOT NULL DEFAULT 0,
        created_at_utc TEXT NOT NULL,
        FOREIGN KEY (story_id) REFERENCES stories(story_id),
        FOREIGN KEY (parent_chapter_id) REFERENCES chapters(chapter_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_chapters_story_parent
    ON chapters(story_id, parent_chapter_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS story_collaborators (
        story_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        role TEXT NOT NULL,
        status TEXT NOT NULL,
        updated_at_utc TEXT NOT NULL,
        PRIMARY KEY (story_id, user_id),
        FOREIGN KEY (story_id) REFERENCES stories(story_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pull_requests (
        pr_id TEXT PRIMARY KEY,
        story_id TEXT NOT NULL,
        chapter_id TEXT NOT NULL,
        parent_chapter_id TEXT,
        author_id TEXT NOT NULL,
        pr_type TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        proposed_content TEXT NOT NULL,
        status TEXT NOT NULL,
        created_at_utc TEXT NOT NULL,
        FOREIGN KEY (story_id) REFERENCES stories(story_id),
        FOREIGN KEY (chapter_id) REFERENCES chapters(chapter_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chapter_versions (
        version_id TEXT PRIMARY KEY,
        chapter_id TEXT NOT NULL,
        version INTEGER NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        changes_summary TEXT NOT NULL,
        edited_by TEXT NOT NULL,
        pr_id TEXT,
        created_at_utc TEXT NOT NULL,
        UNIQUE (chapter_id, version),
        FOREIGN KEY (chapter_id) REFERENCES chapters(chapter_id)
    )
    """,
]

_CHAPTER_COLUMNS: Final = """
    chapter_id, story_id, parent_chapter_id, ancestor_ids_json, depth, author_id, title,
    content, status, is_pr, pr_id, review_status, submitted_at_utc, reads, comments,
    child_branches, upvotes, downvotes, score, version, is_ending, report_count, is_flagged,
    created_at_utc
"""


class SQLiteStoryStore:
    """Persist and query story trees; every call runs inside a caller-owned session."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._database = database
        self._database.initialize(_SCHEMA)

    # -- stories -----------------------------------------------------------

    def create_story(
        self,
        *,
        creator_id: str,
        title: str,
        settings: StorySettings | None = None,
        status: StoryStatus = "PUBLISHED",
        session: SQLiteSession,
    ) -> Story:
        """Create a story and register its creator as the accepted OWNER."""
        effective = settings or StorySettings()
        story_id = uuid4().hex
        now = datetime.now(UTC).isoformat()
        with sqlite_errors("Creating story"):
            session.connection.execute(
                """
                INSERT INTO stories (
                    story_id, creator_id, title, is_public, allow_branching, require_approval,
                    allow_comments, allow_voting, status, created_at_utc
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    story_id,
                    creator_id,
                    title,
                    int(effective.is_public),
                    int(effective.allow_branching),
                    int(effective.require_approval),
                    int(effective.allow_comments),
                    int(effective.allow_voting),
                    status,
                    now,
                ),
            )
        self.upsert_collaborator(
            story_id=story_id,
            user_id=creator_id,
            role=StoryRole.OWNER,
            status="ACCEPTED",
            session=session,
        )
        story = self.find_story_by_id(story_id, session=session)
        if story is None:
            raise InternalError("Created story could not be loaded.")
        return story

    def find_story_by_id(self, story_id: str, *, session: SQLiteSession) -> Story | None:
        with sqlite_errors("Loading story"):
            row = session.connection.execute(
                "SELECT * FROM stories WHERE story_id = ?", (story_id,)
            ).fetchone()
        if row is None:
            return None
        return self._story_from_row(row)

    def update_story_settings(
        self, story_id: str, settings: StorySettings, *, session: SQLiteSession
    ) -> Story:
        with sqlite_errors("Updating story settings"):
            cursor = session.connection.execute(
                """
                UPDATE stories
                SET is_public = ?, allow_branching = ?, require_approval = ?,
                    allow_comments = ?, allow_voting = ?
                WHERE story_id = ?
                """,
                (
                    int(settings.is_public),
                    int(settings.allow_branching),
                    int(settings.require_approval),
                    int(settings.allow_comments),
                    int(settings.allow_voting),
                    story_id,
                ),
            )
        return self._require_story(story_id, cursor.rowcount, session=session)

    def increment_story_stat(
        self, story_id: str, stat: StoryStatField, *, session: SQLiteSession
    ) -> int:
        if stat not in _STORY_STAT_COLUMNS:
            raise InternalError(f"Unknown story stat '{stat}'.")
        with sqlite_errors(f"Incrementing story {stat}"):
            cursor = session.connection.execute(
                f"UPDATE stories SET {stat} = {stat} + 1 WHERE story_id = ?", (story_id,)
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Story '{story_id}' not found.")
            row = session.connection.execute(
                f"SELECT {stat} FROM stories WHERE story_id = ?", (story_id,)
            ).fetchone()
        return int(row[0])

    def touch_story_activity(self, story_id: str, at_utc: str, *, session: SQLiteSession) -> None:
        with sqlite_errors("Updating story activity"):
            session.connection.execute(
                "UPDATE stories SET last_activity_at_utc = ? WHERE story_id = ?",
                (at_utc, story_id),
            )

    # -- chapters ----------------------------------------------------------

    def find_chapter_by_id(self, chapter_id: str, *, session: SQLiteSession) -> Chapter | None:
        with sqlite_errors("Loading chapter"):
            row = session.connection.execute(
                f"SELECT {_CHAPTER_COLUMNS} FROM chapters WHERE chapter_id = ?", (chapter_id,)
            ).fetchone()
        if row is None:
            return None
        return self._chapter_from_row(row)

    def find_root_chapter(self, story_id: str, *, session: SQLiteSession) -> Chapter | None:
        with sqlite_errors("Loading root chapter"):
            row = session.connection.execute(
                f"""
                SELECT {_CHAPTER_COLUMNS} FROM chapters
                WHERE story_id = ? AND parent_chapter_id IS NULL
                ORDER BY created_at_utc
                LIMIT 1
                """,
                (story_id,),
            ).fetchone()
        if row is None:
            return None
        return self._chapter_from_row(row)

    def list_chapters(self, story_id: str, *, session: SQLiteSession) -> list[Chapter]:
        """Return a story's chapters ordered by depth, then creation time."""
        with sqlite_errors("Listing chapters"):
            rows = session.connection.execute(
                f"""
                SELECT {_CHAPTER_COLUMNS} FROM chapters
                WHERE story_id = ?
                ORDER BY depth, created_at_utc, chapter_id
                """,
                (story_id,),
            ).fetchall()
        return [self._chapter_from_row(row) for row in rows]

    def insert_chapter(self, chapter: Chapter, *, session: SQLiteSession) -> None:
        with sqlite_errors("Inserting chapter"):
            session.connection.execute(
                f"""
                INSERT INTO chapters ({_CHAPTER_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chapter.chapter_id,
                    chapter.story_id,
                    chapter.parent_chapter_id,
                    json.dumps(list(chapter.ancestor_ids)),
                    chapter.depth,
                    chapter.author_id,
                    chapter.title,
                    chapter.content,
                    chapter.status,
                    int(chapter.pull_request.is_pr),
                    chapter.pull_request.pr_id,
                    chapter.pull_request.status,
                    chapter.pull_request.submitted_at_utc,
                    chapter.stats.reads,
                    chapter.stats.comments,
                    chapter.stats.child_branches,
                    chapter.votes.upvotes,
                    chapter.votes.downvotes,
                    chapter.votes.score,
                    chapter.version,
                    int(chapter.is_ending),
                    chapter.report_count,
                    int(chapter.is_flagged),
                    chapter.created_at_utc,
                ),
            )

    def increment_child_branches(self, chapter_id: str, *, session: SQLiteSession) -> int:
        with sqlite_errors("Incrementing child branches"):
            cursor = session.connection.execute(
                "UPDATE chapters SET child_branches = child_branches + 1 WHERE chapter_id = ?",
                (chapter_id,),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Chapter '{chapter_id}' not found.")
            row = session.connection.execute(
                "SELECT child_branches FROM chapters WHERE chapter_id = ?", (chapter_id,)
            ).fetchone()
        return int(row["child_branches"])

    def link_chapter_pull_request(
        self, chapter_id: str, pr_id: str, *, session: SQLiteSession
    ) -> None:
        with sqlite_errors("Linking chapter to pull request"):
            cursor = session.connection.execute(
                "UPDATE chapters SET pr_id = ? WHERE chapter_id = ?", (pr_id, chapter_id)
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Chapter '{chapter_id}' not found.")

    def insert_chapter_version(self, version: ChapterVersion, *, session: SQLiteSession) -> None:
        with sqlite_errors("Inserting chapter version"):
            session.connection.execute(
                """
                INSERT INTO chapter_versions (
                    version_id, chapter_id, version, title, content, changes_summary,
                    edited_by, pr_id, created_at_utc
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    version.version_id,
                    version.chapter_id,
                    version.version,
                    version.title,
                    version.content,
                    version.changes_summary,
                    version.edited_by,
                    version.pr_id,
                    version.created_at_utc,
                ),
            )

    def list_chapter_versions(
        self, chapter_id: str, *, session: SQLiteSession
    ) -> list[ChapterVersion]:
        with sqlite_errors("Listing chapter versions"):
            rows = session.connection.execute(
                """
                SELECT version_id, chapter_id, version, title, content, changes_summary,
                       edited_by, pr_id, created_at_utc
                FROM chapter_versions
                WHERE chapter_id = ?
                ORDER BY version
                """,
                (chapter_id,),
            ).fetchall()
        return [
            ChapterVersion(
                version_id=str(row["version_id"]),
                chapter_id=str(row["chapter_id"]),
                version=int(row["version"]),
                title=str(row["title"]),
                content=str(row["content"]),
                changes_summary=str(row["changes_summary"]),
                edited_by=str(row["edited_by"]),
                pr_id=row["pr_id"],
                created_at_utc=str(row["created_at_utc"]),
            )
            for row in rows
        ]

    # -- collaborators -----------------------------------------------------

    def upsert_collaborator(
        self,
        *,
        story_id: str,
        user_id: str,
        role: StoryRole,
        status: CollaboratorStatus,
        session: SQLiteSession,
    ) -> StoryCollaborator:
        now = datetime.now(UTC).isoformat()
        with sqlite_errors("Saving collaborator"):
            session.connection.execute(
                """
                INSERT INTO story_collaborators (story_id, user_id, role, status, updated_at_utc)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (story_id, user_id)
                DO UPDATE SET role = excluded.role, status = excluded.status,
                              updated_at_utc = excluded.updated_at_utc
                """,
                (story_id, user_id, role.value, status, now),
            )
        return StoryCollaborator(story_id=story_id, user_id=user_id, role=role, status=status)

    def find_accepted_collaborator(
        self, story_id: str, user_id: str, *, session: SQLiteSession
    ) -> StoryCollaborator | None:
        with sqlite_errors("Loading collaborator"):
            row = session.connection.execute(
                """
                SELECT story_id, user_id, role, status FROM story_collaborators
                WHERE story_id = ? AND user_id = ? AND status = 'ACCEPTED'
                """,
                (story_id, user_id),
            ).fetchone()
        if row is None:
            return None
        return self._collaborator_from_row(row)

    def list_accepted_collaborators(
        self, story_id: str, *, session: SQLiteSession
    ) -> list[StoryCollaborator]:
        with sqlite_errors("Listing collaborators"):
            rows = session.connection.execute(
                """
                SELECT story_id, user_id, role, status FROM story_collaborators
                WHERE story_id = ? AND status = 'ACCEPTED'
                ORDER BY updated_at_utc, user_id
                """,
                (story_id,),
            ).fetchall()
        return [self._collaborator_from_row(row) for row in rows]

    # -- pull requests -----------------------------------------------------

    def insert_pull_request(self, pull_request: PullRequest, *, session: SQLiteSession) -> None:
        with sqlite_errors("Inserting pull request"):
            session.connection.execute(
                """
                INSERT INTO pull_requests (
                    pr_id, story_id, chapter_id, parent_chapter_id, author_id, pr_type, title,
                    description, proposed_content, status, created_at_utc
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pull_request.pr_id,
                    pull_request.story_id,
                    pull_request.chapter_id,
                    pull_request.parent_chapter_id,
                    pull_request.author_id,
                    pull_request.pr_type,
                    pull_request.title,
                    pull_request.description,
                    pull_request.changes.proposed,
                    pull_request.status,
                    pull_request.created_at_utc,
                ),
            )

    def list_pull_requests(self, story_id: str, *, session: SQLiteSession) -> list[PullRequest]:
        with sqlite_errors("Listing pull requests"):
            rows = session.connection.execute(
                """
                SELECT pr_id, story_id, chapter_id, parent_chapter_id, author_id, pr_type, title,
                       description, proposed_content, status, created_at_utc
                FROM pull_requests
                WHERE story_id = ?
                ORDER BY created_at_utc, pr_id
                """,
                (story_id,),
            ).fetchall()
        return [
            PullRequest(
                pr_id=str(row["pr_id"]),
                story_id=str(row["story_id"]),
                chapter_id=str(row["chapter_id"]),
                parent_chapter_id=row["parent_chapter_id"],
                author_id=str(row["author_id"]),
                title=str(row["title"]),
                description=str(row["description"]),
                changes=PullRequestChanges(proposed=str(row["proposed_content"])),
                pr_type=row["pr_type"],
                status=row["status"],
                created_at_utc=str(row["created_at_utc"]),
            )
            for row in rows
        ]

    # -- row mapping -------------------------------------------------------

    def _require_story(self, story_id: str, rowcount: int, *, session: SQLiteSession) -> Story:
        story = self.find_story_by_id(story_id, session=session) if rowcount else None
        if story is None:
            raise NotFoundError(f"Story '{story_id}' not found.")
        return story

    @staticmethod
    def _story_from_row(row: sqlite3.Row) -> Story:
        return Story(
            story_id=str(row["story_id"]),
            creator_id=str(row["creator_id"]),
            title=str(row["title"]),
            settings=StorySettings(
                is_public=bool(row["is_public"]),
                allow_branching=bool(row["allow_branching"]),
                require_approval=bool(row["require_approval"]),
                allow_comments=bool(row["allow_comments"]),
                allow_voting=bool(row["allow_voting"]),
            ),
            stats=StoryStats(
                total_chapters=int(row["total_chapters"]),
                total_branches=int(row["total_branches"]),
                total_reads=int(row["total_reads"]),
                total_votes=int(row["total_votes"]),
                unique_contributors=int(row["unique_contributors"]),
                average_rating=float(row["average_rating"]),
            ),
            status=row["status"],
            last_activity_at_utc=row["last_activity_at_utc"],
        )

    @staticmethod
    def _chapter_from_row(row: sqlite3.Row) -> Chapter:
        return Chapter(
            chapter_id=str(row["chapter_id"]),
            story_id=str(row["story_id"]),
            parent_chapter_id=row["parent_chapter_id"],
            ancestor_ids=tuple(json.loads(row["ancestor_ids_json"])),
            depth=int(row["depth"]),
            author_id=str(row["author_id"]),
            title=str(row["title"]),
            content=str(row["content"]),
            status=row["status"],
            pull_request=ChapterReview(
                is_pr=bool(row["is_pr"]),
                pr_id=row["pr_id"],
                status=row["review_status"],
                submitted_at_utc=row["submitted_at_utc"],
            ),
            stats=ChapterStats(
                reads=int(row["reads"]),
                comments=int(row["comments"]),
                child_branches=int(row["child_branches"]),
            ),
            votes=ChapterVotes(
                upvotes=int(row["upvotes"]),
                downvotes=int(row["downvotes"]),
                score=int(row["score"]),
            ),
            version=int(row["version"]),
            is_ending=bool(row["is_ending"]),
            report_count=int(row["report_count"]),
            is_flagged=bool(row["is_flagged"]),
            created_at_utc=str(row["created_at_utc"]),
        )

    @staticmethod
    def _collaborator_from_row(row: sqlite3.Row) -> StoryCollaborator:
        return StoryCollaborator(
            story_id=str(row["story_id"]),
            user_id=str(row["user_id"]),
            role=StoryRole(row["role"]),
            status=row["status"],
        )
