from __future__ import annotations

from pathlib import Path

import pytest

from storychain.adapters.sqlite_gamification_store import SQLiteGamificationStore
from storychain.adapters.sqlite_notification_outbox import SQLiteNotificationOutbox
from storychain.adapters.sqlite_session import SQLiteDatabase
from storychain.adapters.sqlite_story_store import SQLiteStoryStore
from storychain.domain.errors import InternalError, NotFoundError, TransientError
from storychain.domain.models import StorySettings
from storychain.domain.roles import StoryRole


def _stores(tmp_path: Path) -> tuple[SQLiteDatabase, SQLiteStoryStore]:
    database = SQLiteDatabase(tmp_path / "stories.db")
    return database, SQLiteStoryStore(database)


def test_story_lifecycle_registers_creator_as_owner(tmp_path: Path) -> None:
    database, store = _stores(tmp_path)
    with database.transaction("create") as session:
        created = store.create_story(
            creator_id="alice",
            title="Hello",
            settings=StorySettings(require_approval=True),
            session=session,
        )

    with database.read_session("read") as session:
        loaded = store.find_story_by_id(created.story_id, session=session)
        owner = store.find_accepted_collaborator(created.story_id, "alice", session=session)
        missing = store.find_story_by_id("missing-story-id", session=session)

    assert loaded == created
    assert loaded is not None
    assert loaded.settings.require_approval is True
    assert loaded.stats.total_chapters == 0
    assert owner is not None
    assert owner.role is StoryRole.OWNER
    assert missing is None


def test_counter_increments_return_new_values(tmp_path: Path) -> None:
    database, store = _stores(tmp_path)
    with database.transaction("create") as session:
        story = store.create_story(creator_id="alice", title="Hello", session=session)
    with database.transaction("bump") as session:
        first = store.increment_story_stat(story.story_id, "total_chapters", session=session)
        second = store.increment_story_stat(story.story_id, "total_chapters", session=session)
        branches = store.increment_story_stat(story.story_id, "total_branches", session=session)

    assert (first, second, branches) == (1, 2, 1)


def test_unknown_story_stat_and_missing_rows(tmp_path: Path) -> None:
    database, store = _stores(tmp_path)
    with pytest.raises(InternalError):
        with database.transaction("bad stat") as session:
            store.increment_story_stat("s", "total_reads", session=session)  # type: ignore[arg-type]
    with pytest.raises(NotFoundError):
        with database.transaction("missing story") as session:
            store.increment_story_stat("missing", "total_chapters", session=session)
    with pytest.raises(NotFoundError):
        with database.transaction("missing chapter") as session:
            store.increment_child_branches("missing", session=session)


def test_rollback_discards_every_write(tmp_path: Path) -> None:
    database, store = _stores(tmp_path)
    with pytest.raises(RuntimeError):
        with database.transaction("doomed") as session:
            store.create_story(creator_id="alice", title="Doomed", session=session)
            raise RuntimeError("boom")

    with database.read_session("count") as session:
        count = session.connection.execute("SELECT COUNT(*) FROM stories").fetchone()[0]
        collaborators = session.connection.execute(
            "SELECT COUNT(*) FROM story_collaborators"
        ).fetchone()[0]
    assert count == 0
    assert collaborators == 0


def test_collaborator_upsert_replaces_role_and_filters_status(tmp_path: Path) -> None:
    database, store = _stores(tmp_path)
    with database.transaction("seed") as session:
        story = store.create_story(creator_id="alice", title="Hello", session=session)
        store.upsert_collaborator(
            story_id=story.story_id,
            user_id="bob",
            role=StoryRole.CONTRIBUTOR,
            status="PENDING",
            session=session,
        )
    with database.read_session("read pending") as session:
        assert store.find_accepted_collaborator(story.story_id, "bob", session=session) is None

    with database.transaction("accept") as session:
        store.upsert_collaborator(
            story_id=story.story_id,
            user_id="bob",
            role=StoryRole.MODERATOR,
            status="ACCEPTED",
            session=session,
        )
    with database.read_session("read accepted") as session:
        bob = store.find_accepted_collaborator(story.story_id, "bob", session=session)
        accepted = store.list_accepted_collaborators(story.story_id, session=session)

    assert bob is not None
    assert bob.role is StoryRole.MODERATOR
    assert {collaborator.user_id for collaborator in accepted} == {"alice", "bob"}


def test_lock_wait_timeout_is_transient(tmp_path: Path) -> None:
    database, store = _stores(tmp_path)
    impatient = SQLiteDatabase(database.db_path, busy_timeout_seconds=0.05)

    with database.transaction("hold lock") as session:
        store.create_story(creator_id="alice", title="Holder", session=session)
        with pytest.raises(TransientError) as excinfo:
            with impatient.transaction("blocked") as blocked:
                store.create_story(creator_id="bob", title="Blocked", session=blocked)

    assert excinfo.value.retryable is True


def test_expired_transaction_is_rolled_back_as_transient(tmp_path: Path) -> None:
    database, store = _stores(tmp_path)
    expired = SQLiteDatabase(database.db_path, max_transaction_seconds=-1.0)

    with pytest.raises(TransientError, match="exceeded its time limit"):
        with expired.transaction("slow") as session:
            store.create_story(creator_id="alice", title="Slow", session=session)

    with database.read_session("count") as session:
        count = session.connection.execute("SELECT COUNT(*) FROM stories").fetchone()[0]
    assert count == 0


def test_gamification_ledger_accumulates_and_grants_badges_once(tmp_path: Path) -> None:
    database = SQLiteDatabase(tmp_path / "progress.db")
    ledger = SQLiteGamificationStore(database)
    with database.transaction("award") as session:
        ledger.award_xp("bob", 20, {"chapters_written": 1, "branches_created": 1}, session=session)
        progress = ledger.award_xp(
            "bob", 20, {"chapters_written": 1, "branches_created": 1}, session=session
        )
        first = ledger.grant_badge_if_absent("bob", "BRANCH_CREATOR", session=session)
        second = ledger.grant_badge_if_absent("bob", "BRANCH_CREATOR", session=session)

    assert progress.xp == 40
    assert progress.chapters_written == 2
    assert progress.branches_created == 2
    assert (first, second) == (True, False)
    with database.read_session("read") as session:
        assert ledger.get_progress("bob", session=session).badges == frozenset({"BRANCH_CREATOR"})
        assert ledger.get_progress("nobody", session=session).xp == 0
    with pytest.raises(InternalError):
        with database.transaction("bad stat") as session:
            ledger.award_xp("bob", 5, {"comments": 1}, session=session)


def test_outbox_pending_and_delivery(tmp_path: Path) -> None:
    database = SQLiteDatabase(tmp_path / "outbox.db")
    outbox = SQLiteNotificationOutbox(database)
    with database.transaction("enqueue") as session:
        first = outbox.enqueue("alice", "NEW_BRANCH", {"title": "t"}, session=session)
        outbox.enqueue("bob", "PR_OPENED", {"title": "u"}, session=session)

    with database.transaction("deliver") as session:
        pending = outbox.list_pending(session=session)
        delivered = outbox.mark_delivered([first], session=session)
        remaining = outbox.list_pending(session=session)

    assert len(pending) == 2
    assert delivered == 1
    assert [row.user_id for row in remaining] == ["bob"]
    with database.read_session("read") as session:
        alice_rows = outbox.list_for_user("alice", session=session)
    assert alice_rows[0].payload == {"title": "t"}
    assert alice_rows[0].delivered_at_utc is not None
