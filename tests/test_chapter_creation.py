from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pytest

from conftest import StoryKit
from storychain.adapters.sqlite_workspace import SQLiteWorkspace
from storychain.application.chapter_creation import ChapterCreationService
from storychain.application.validation import ChapterCreateInput
from storychain.domain.errors import (
    BadRequestError,
    ChapterWorkflowError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from storychain.domain.models import DirectPublishResult, PullRequestGateResult
from storychain.domain.roles import StoryRole

PROLOGUE_TEXT = "Fog rolled over the harbor as the last ferry left without its captain."


def _direct(result: object) -> DirectPublishResult:
    assert isinstance(result, DirectPublishResult)
    return result


def _gated(result: object) -> PullRequestGateResult:
    assert isinstance(result, PullRequestGateResult)
    return result


def _side_effect_counts(kit: StoryKit) -> dict[str, int]:
    return {
        table: kit.count(table)
        for table in (
            "chapters",
            "pull_requests",
            "chapter_versions",
            "notifications",
            "user_progress",
            "user_badges",
        )
    }


class _FailingOutbox:
    def enqueue(self, user_id: str, notification_type: str, payload: Any, *, session: Any) -> str:
        raise InternalError("Notification queue unavailable.")


def test_scenario_a_creator_writes_root_chapter(kit: StoryKit) -> None:
    story = kit.story(allow_branching=True, require_approval=False)

    result = _direct(kit.write(story.story_id, "alice", title="Prologue", content=PROLOGUE_TEXT))

    assert result.xp_awarded == 50
    assert result.badges_earned == ("STORY_STARTER",)
    assert result.chapter.status == "PUBLISHED"
    assert result.chapter.depth == 0
    assert result.chapter.ancestor_ids == ()
    assert result.stats.total_chapters == 1
    assert result.stats.is_root is True
    stored = kit.load_story(story.story_id)
    assert stored.stats.total_chapters == 1
    assert stored.stats.total_branches == 0
    assert stored.last_activity_at_utc == result.chapter.created_at_utc
    progress = kit.progress("alice")
    assert progress.xp == 50
    assert progress.chapters_written == 1
    assert progress.branches_created == 0
    assert progress.badges == frozenset({"STORY_STARTER"})
    assert [row.notification_type for row in kit.notifications("alice")] == ["BADGE_EARNED"]


def test_scenario_b_contributor_branches_directly(kit: StoryKit) -> None:
    story = kit.story()
    root = _direct(kit.write(story.story_id, "alice", title="Prologue")).chapter
    kit.collaborator(story.story_id, "bob", StoryRole.CONTRIBUTOR)

    result = _direct(
        kit.write(story.story_id, "bob", parent_chapter_id=root.chapter_id, title="Harbor")
    )

    assert result.xp_awarded == 20
    assert result.badges_earned == ()
    assert result.chapter.depth == 1
    assert result.chapter.ancestor_ids == (root.chapter_id,)
    assert result.chapter.parent_chapter_id == root.chapter_id
    assert result.chapter.status == "PUBLISHED"
    reloaded_root = kit.load_chapter(root.chapter_id)
    assert reloaded_root is not None
    assert reloaded_root.stats.child_branches == 1
    stored = kit.load_story(story.story_id)
    assert stored.stats.total_chapters == 2
    assert stored.stats.total_branches == 0
    assert kit.progress("bob").branches_created == 1
    branch_notices = [
        row for row in kit.notifications("alice") if row.notification_type == "NEW_BRANCH"
    ]
    assert len(branch_notices) == 1
    assert branch_notices[0].payload["related_chapter_id"] == result.chapter.chapter_id
    assert kit.notifications("bob") == []


def test_root_chapter_notifies_existing_collaborators(kit: StoryKit) -> None:
    story = kit.story()
    kit.collaborator(story.story_id, "bob", StoryRole.CONTRIBUTOR)

    root = _direct(kit.write(story.story_id, "alice", title="Prologue")).chapter

    notices = kit.notifications("bob")
    assert [row.notification_type for row in notices] == ["STORY_CONTINUED"]
    assert notices[0].payload["related_chapter_id"] == root.chapter_id
    assert "STORY_CONTINUED" not in {
        row.notification_type for row in kit.notifications("alice")
    }


def test_scenario_c_contributor_is_gated_when_approval_required(kit: StoryKit) -> None:
    story = kit.story()
    kit.collaborator(story.story_id, "bob", StoryRole.CONTRIBUTOR)
    kit.collaborator(story.story_id, "mia", StoryRole.MODERATOR)
    kit.collaborator(story.story_id, "rex", StoryRole.REVIEWER)
    root = _direct(kit.write(story.story_id, "alice", title="Prologue")).chapter
    harbor = _direct(
        kit.write(story.story_id, "bob", parent_chapter_id=root.chapter_id, title="Harbor")
    ).chapter
    kit.require_approval(story)

    result = _gated(
        kit.write(story.story_id, "bob", parent_chapter_id=harbor.chapter_id, title="Undertow")
    )

    assert result.chapter.status == "PENDING_APPROVAL"
    pull_request = result.pull_request
    assert pull_request.status == "OPEN"
    assert pull_request.pr_type == "NEW_CHAPTER"
    assert pull_request.title == "[NEW] Chapter 2: Undertow"
    assert pull_request.description == "New chapter continuation from Chapter 2"
    assert pull_request.parent_chapter_id == harbor.chapter_id
    assert pull_request.author_id == "bob"

    stored_chapter = kit.load_chapter(result.chapter.chapter_id)
    assert stored_chapter is not None
    assert stored_chapter.depth == 2
    assert stored_chapter.pull_request.is_pr is True
    assert stored_chapter.pull_request.pr_id == pull_request.pr_id
    assert stored_chapter.pull_request.status == "PENDING"

    reloaded_harbor = kit.load_chapter(harbor.chapter_id)
    assert reloaded_harbor is not None
    assert reloaded_harbor.stats.child_branches == 0
    assert kit.load_story(story.story_id).stats.total_chapters == 3
    assert kit.progress("bob").xp == 20

    def types(user_id: str) -> list[str]:
        return [row.notification_type for row in kit.notifications(user_id)]

    assert types("mia").count("PR_OPENED") == 1
    assert types("alice").count("PR_OPENED") == 1
    assert "PR_OPENED" not in types("rex")
    assert "PR_OPENED" not in types("bob")


def test_scenario_d_eleventh_branch_is_rejected_without_side_effects(kit: StoryKit) -> None:
    story = kit.story()
    root = _direct(kit.write(story.story_id, "alice", title="Prologue")).chapter
    for index in range(10):
        kit.write(story.story_id, "alice", parent_chapter_id=root.chapter_id, title=f"Way {index}")
    before = _side_effect_counts(kit)
    story_before = kit.load_story(story.story_id)

    with pytest.raises(ValidationError, match=r"Maximum branches \(10\)"):
        kit.write(story.story_id, "alice", parent_chapter_id=root.chapter_id, title="Way 11")

    assert _side_effect_counts(kit) == before
    assert kit.load_story(story.story_id) == story_before
    reloaded_root = kit.load_chapter(root.chapter_id)
    assert reloaded_root is not None
    assert reloaded_root.stats.child_branches == 10


def test_scenario_e_outsider_is_forbidden_without_side_effects(kit: StoryKit) -> None:
    story = kit.story()
    root = _direct(kit.write(story.story_id, "alice", title="Prologue")).chapter
    before = _side_effect_counts(kit)

    with pytest.raises(ForbiddenError, match="Only story collaborators"):
        kit.write(story.story_id, "mallory", parent_chapter_id=root.chapter_id)

    assert _side_effect_counts(kit) == before


def test_outsider_cannot_write_the_root(kit: StoryKit) -> None:
    story = kit.story()
    kit.collaborator(story.story_id, "bob", StoryRole.CO_AUTHOR)
    with pytest.raises(ForbiddenError, match="Only the story creator"):
        kit.write(story.story_id, "bob")
    assert kit.count("chapters") == 0


def test_pending_or_declined_collaborators_are_forbidden(kit: StoryKit) -> None:
    story = kit.story()
    kit.collaborator(story.story_id, "bob", StoryRole.CO_AUTHOR, status="PENDING")
    root = _direct(kit.write(story.story_id, "alice")).chapter
    with pytest.raises(ForbiddenError):
        kit.write(story.story_id, "bob", parent_chapter_id=root.chapter_id)


def test_approver_bypasses_the_gate(kit: StoryKit) -> None:
    story = kit.story(require_approval=True)
    kit.collaborator(story.story_id, "mia", StoryRole.MODERATOR)
    root = _direct(kit.write(story.story_id, "alice")).chapter

    result = kit.write(story.story_id, "mia", parent_chapter_id=root.chapter_id)

    assert _direct(result).chapter.status == "PUBLISHED"


def test_second_root_chapter_is_rejected(kit: StoryKit) -> None:
    story = kit.story()
    kit.write(story.story_id, "alice")
    with pytest.raises(ValidationError, match="Root chapter already exists"):
        kit.write(story.story_id, "alice")


def test_missing_and_deleted_stories(kit: StoryKit) -> None:
    with pytest.raises(NotFoundError):
        kit.write("missing-story", "alice")
    deleted = kit.story(status="DELETED")
    with pytest.raises(BadRequestError):
        kit.write(deleted.story_id, "alice")


def test_parent_from_another_story_is_not_found(kit: StoryKit) -> None:
    first = kit.story(title="First")
    second = kit.story(title="Second")
    foreign_root = _direct(kit.write(second.story_id, "alice")).chapter
    with pytest.raises(NotFoundError, match="Parent chapter not found"):
        kit.write(first.story_id, "alice", parent_chapter_id=foreign_root.chapter_id)


def test_branching_from_deleted_chapter_is_rejected(kit: StoryKit) -> None:
    story = kit.story()
    root = _direct(kit.write(story.story_id, "alice")).chapter
    kit.execute("UPDATE chapters SET status = 'DELETED' WHERE chapter_id = ?", (root.chapter_id,))
    with pytest.raises(ValidationError, match="deleted chapter"):
        kit.write(story.story_id, "alice", parent_chapter_id=root.chapter_id)


def test_branching_disabled_story_is_forbidden(kit: StoryKit) -> None:
    story = kit.story(allow_branching=False)
    root = _direct(kit.write(story.story_id, "alice")).chapter
    with pytest.raises(ForbiddenError, match="Branching is not allowed"):
        kit.write(story.story_id, "alice", parent_chapter_id=root.chapter_id)


def test_depth_limit_rejects_children_of_depth_fifty(kit: StoryKit) -> None:
    story = kit.story()
    root = _direct(kit.write(story.story_id, "alice")).chapter
    kit.execute("UPDATE chapters SET depth = 50 WHERE chapter_id = ?", (root.chapter_id,))
    with pytest.raises(ValidationError, match=r"Maximum story depth \(50\)"):
        kit.write(story.story_id, "alice", parent_chapter_id=root.chapter_id)


def test_ancestry_and_counters_hold_across_a_tree(kit: StoryKit) -> None:
    story = kit.story()
    root = _direct(kit.write(story.story_id, "alice", title="Prologue")).chapter
    left = _direct(kit.write(story.story_id, "alice", parent_chapter_id=root.chapter_id)).chapter
    kit.write(story.story_id, "alice", parent_chapter_id=root.chapter_id)
    deep = left
    for _ in range(3):
        deep = _direct(
            kit.write(story.story_id, "alice", parent_chapter_id=deep.chapter_id)
        ).chapter

    chapters = {chapter.chapter_id: chapter for chapter in kit.chapters(story.story_id)}
    assert len(chapters) == 6
    for chapter in chapters.values():
        assert chapter.depth == len(chapter.ancestor_ids)
        if chapter.parent_chapter_id is None:
            continue
        parent = chapters[chapter.parent_chapter_id]
        assert chapter.ancestor_ids == (*parent.ancestor_ids, parent.chapter_id)
    stored = kit.load_story(story.story_id)
    assert stored.stats.total_chapters == 6
    assert stored.stats.total_branches == 1
    assert kit.count("chapter_versions") == 6


def test_branch_creator_badge_after_ten_branches(kit: StoryKit) -> None:
    story = kit.story()
    root = _direct(kit.write(story.story_id, "alice")).chapter
    results = [
        _direct(kit.write(story.story_id, "alice", parent_chapter_id=root.chapter_id))
        for _ in range(10)
    ]
    assert [result.badges_earned for result in results[:9]] == [()] * 9
    assert results[9].badges_earned == ("BRANCH_CREATOR",)
    assert kit.progress("alice").xp == 50 + 10 * 20


def test_version_one_is_recorded_with_pull_request_link(kit: StoryKit) -> None:
    story = kit.story(require_approval=True)
    kit.collaborator(story.story_id, "bob", StoryRole.CONTRIBUTOR)
    root = _direct(kit.write(story.story_id, "alice")).chapter
    result = _gated(kit.write(story.story_id, "bob", parent_chapter_id=root.chapter_id))

    with kit.workspace.database.read_session("versions") as session:
        versions = kit.workspace.stories.list_chapter_versions(
            result.chapter.chapter_id, session=session
        )
    assert len(versions) == 1
    assert versions[0].version == 1
    assert versions[0].changes_summary == "First Chapter"
    assert versions[0].edited_by == "bob"
    assert versions[0].pr_id == result.pull_request.pr_id


def test_outbox_failure_rolls_back_everything(workspace: SQLiteWorkspace, kit: StoryKit) -> None:
    story = kit.story()
    service = ChapterCreationService(
        transactions=workspace.database,
        repository=workspace.stories,
        outbox=_FailingOutbox(),
        ledger=workspace.gamification,
    )
    before = _side_effect_counts(kit)

    with pytest.raises(InternalError, match="Notification queue unavailable"):
        service.create_chapter(
            ChapterCreateInput(
                story_id=story.story_id,
                title="Prologue",
                content=PROLOGUE_TEXT,
                user_id="alice",
            )
        )

    assert _side_effect_counts(kit) == before
    stored = kit.load_story(story.story_id)
    assert stored.stats.total_chapters == 0
    assert stored.last_activity_at_utc is None
    assert kit.progress("alice").xp == 0


def test_concurrent_branches_never_exceed_the_limit(kit: StoryKit) -> None:
    story = kit.story()
    root = _direct(kit.write(story.story_id, "alice")).chapter

    def attempt(index: int) -> str:
        try:
            kit.write(
                story.story_id,
                "alice",
                parent_chapter_id=root.chapter_id,
                title=f"Race {index}",
            )
        except ChapterWorkflowError as exc:
            return exc.kind
        return "ok"

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(attempt, range(14)))

    assert outcomes.count("ok") == 10
    assert outcomes.count("validation") == 4
    reloaded_root = kit.load_chapter(root.chapter_id)
    assert reloaded_root is not None
    assert reloaded_root.stats.child_branches == 10
    assert kit.load_story(story.story_id).stats.total_chapters == 11
