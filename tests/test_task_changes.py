# tests/test_task_changes.py

from __future__ import annotations

import math

import pytest

from openstud.core.identity import Identity
from openstud.tasks.task_changes import ChangeStore, TaskChanges, save_button_label
from openstud.tasks.task_models import AccessDeniedError, InvalidTaskFieldError, TaskPriority

from .fakes import FakeAsyncTaskUpdater, FakeTaskUpdater

ALICE = Identity(user_id="alice")


def test_change_store_merges_edits_into_one_entry() -> None:
    store = ChangeStore()
    store.add_change("t1", {"title": "Essay draft", "priority": "low"})
    store.add_change("t1", {"priority": "high", "description": "intro + body"})

    assert len(store) == 1
    assert store.get_change_for("t1") == {
        "title": "Essay draft",
        "priority": TaskPriority.HIGH,
        "description": "intro + body",
    }


def test_progress_scenario_merge_then_discard() -> None:
    changes = TaskChanges(FakeTaskUpdater())

    changes.add_change("t1", {"completion_percentage": 40})
    assert len(changes) == 1
    assert changes.get_change_for("t1") == {"completion_percentage": 40, "completed": False}

    changes.add_change("t1", {"completion_percentage": 100})
    assert len(changes) == 1
    assert changes.get_change_for("t1") == {"completion_percentage": 100, "completed": True}

    assert changes.discard_all_changes() == 1
    assert not changes.has_pending_changes()
    assert changes.list_pending_changes() == []


@pytest.mark.parametrize("pct, done", [(0, False), (1, False), (99, False), (100, True)])
def test_percentage_drives_completed_flag(pct: int, done: bool) -> None:
    store = ChangeStore()
    store.add_change("t1", {"completed": not done})
    store.add_change("t1", {"completion_percentage": pct})
    assert store.get_change_for("t1") == {"completion_percentage": pct, "completed": done}


def test_completed_flag_drives_percentage() -> None:
    store = ChangeStore()
    store.add_change("t1", {"completed": True})
    assert store.get_change_for("t1") == {"completed": True, "completion_percentage": 100}

    store.add_change("t1", {"completed": False})
    assert store.get_change_for("t1") == {"completed": False, "completion_percentage": 0}

    # No staged percentage at 100: unchecking alone does not invent one.
    store.add_change("t2", {"completed": False})
    assert store.get_change_for("t2") == {"completed": False}


@pytest.mark.parametrize(
    "fields",
    [
        {"completion_percentage": 101},
        {"completion_percentage": -1},
        {"completion_percentage": True},
        {"completion_percentage": "50"},
        {"completed": "yes"},
        {"title": "ab"},
        {"priority": "whenever"},
        {"due_at": math.inf},
        {"due_at": math.nan},
        {"owner": "bob"},
    ],
)
def test_invalid_edit_is_rejected_and_store_unchanged(fields) -> None:
    store = ChangeStore()
    store.add_change("t1", {"completion_percentage": 30})

    with pytest.raises(InvalidTaskFieldError):
        store.add_change("t1", fields)

    assert len(store) == 1
    assert store.get_change_for("t1") == {"completion_percentage": 30, "completed": False}


def test_add_change_requires_task_id() -> None:
    store = ChangeStore()
    with pytest.raises(ValueError):
        store.add_change("  ", {"completed": True})
    assert not store.has_pending_changes()


def test_task_id_whitespace_maps_to_one_entry() -> None:
    store = ChangeStore()
    store.add_change(" t1", {"completion_percentage": 20})
    store.add_change("t1 ", {"priority": "high"})

    assert len(store) == 1
    assert store.get_change_for("t1") == {
        "completion_percentage": 20,
        "completed": False,
        "priority": TaskPriority.HIGH,
    }
    assert store.get_change_for(" t1 ") == store.get_change_for("t1")


def test_read_views_are_copies() -> None:
    store = ChangeStore()
    store.add_change("t1", {"completion_percentage": 10})

    store.get_change_for("t1")["completion_percentage"] = 99
    store.list_pending_changes()[0].fields["completed"] = True

    assert store.get_change_for("t1") == {"completion_percentage": 10, "completed": False}
    assert store.get_change_for("missing") is None


def test_list_keeps_first_edit_order() -> None:
    store = ChangeStore()
    store.add_change("b", {"completed": True})
    store.add_change("a", {"completed": True})
    store.add_change("b", {"completion_percentage": 20})

    assert [c.task_id for c in store.list_pending_changes()] == ["b", "a"]


def test_save_button_label() -> None:
    assert save_button_label(1) == "Save 1 Change"
    assert save_button_label(3) == "Save 3 Changes"


@pytest.mark.asyncio
async def test_save_all_success_empties_store() -> None:
    updater = FakeTaskUpdater()
    changes = TaskChanges(updater)
    changes.add_change("t1", {"completion_percentage": 40})
    changes.add_change("t2", {"completed": True})

    report = await changes.save_all_changes(ALICE)

    assert report.ok
    assert report.saved == ["t1", "t2"]
    assert not changes.has_pending_changes()
    assert [(c.user_id, c.task_id, c.fields) for c in updater.calls] == [
        ("alice", "t1", {"completion_percentage": 40, "completed": False}),
        ("alice", "t2", {"completed": True, "completion_percentage": 100}),
    ]


@pytest.mark.asyncio
async def test_partial_failure_keeps_only_failed_entries() -> None:
    updater = FakeTaskUpdater(fail_ids={"t2": AccessDeniedError("Only the task creator can edit this task")})
    changes = TaskChanges(updater)
    changes.add_change("t1", {"completion_percentage": 100})
    changes.add_change("t2", {"completion_percentage": 55})
    changes.add_change("t3", {"title": "Read chapter 4"})

    report = await changes.save_all_changes(ALICE)

    assert not report.ok
    assert report.attempted == 3
    assert report.saved == ["t1", "t3"]
    assert [(f.task_id, f.reason) for f in report.failed] == [
        ("t2", "Only the task creator can edit this task")
    ]
    assert [c.task_id for c in changes.list_pending_changes()] == ["t2"]
    assert changes.get_change_for("t2") == {"completion_percentage": 55, "completed": False}


@pytest.mark.asyncio
async def test_failed_entry_can_be_retried() -> None:
    updater = FakeTaskUpdater(fail_ids={"t1": ConnectionError()})
    changes = TaskChanges(updater)
    changes.add_change("t1", {"completed": True})

    first = await changes.save_all_changes(ALICE)
    assert first.failed[0].reason == "ConnectionError"
    assert changes.has_pending_changes()

    updater.fail_ids.clear()
    second = await changes.save_all_changes(ALICE)
    assert second.ok
    assert not changes.has_pending_changes()
    assert len(updater.calls) == 2


@pytest.mark.asyncio
async def test_save_with_nothing_pending_calls_nothing() -> None:
    updater = FakeTaskUpdater()
    report = await TaskChanges(updater).save_all_changes(ALICE)

    assert report.ok
    assert report.attempted == 0
    assert updater.calls == []


@pytest.mark.asyncio
async def test_async_updater_is_awaited() -> None:
    updater = FakeAsyncTaskUpdater(fail_ids={"t1": RuntimeError("db locked")})
    changes = TaskChanges(updater)
    changes.add_change("t1", {"completion_percentage": 10})
    changes.add_change("t2", {"completion_percentage": 20})

    report = await changes.save_all_changes(ALICE)

    assert report.saved == ["t2"]
    assert report.failed[0].reason == "db locked"
    assert [c.task_id for c in changes.list_pending_changes()] == ["t1"]


@pytest.mark.asyncio
async def test_edit_during_commit_stays_pending() -> None:
    changes: TaskChanges

    def edit_again(task_id: str) -> None:
        if task_id == "t1":
            changes.add_change("t1", {"completion_percentage": 80})

    updater = FakeAsyncTaskUpdater(on_call=edit_again)
    changes = TaskChanges(updater)
    changes.add_change("t1", {"completion_percentage": 50})

    report = await changes.save_all_changes(ALICE)

    assert report.saved == ["t1"]
    assert updater.calls[0].fields == {"completion_percentage": 50, "completed": False}
    assert changes.get_change_for("t1") == {"completion_percentage": 80, "completed": False}


@pytest.mark.asyncio
async def test_save_against_real_store(task_store, alice, bob) -> None:
    project = task_store.create_project(alice, name="Thesis")
    mine = task_store.create_task(alice, project_id=project.id, title="Write abstract")

    ws = task_store.create_workspace(alice, name="Study group")
    task_store.add_workspace_member(alice, ws.id, "bob")
    team = task_store.create_project(alice, name="Group lab", workspace_id=ws.id)
    bobs = task_store.create_task(bob, project_id=team.id, title="Collect data")

    changes = TaskChanges(task_store)
    changes.add_change(mine.id, {"completion_percentage": 100})
    changes.add_change(bobs.id, {"completion_percentage": 30})

    report = await changes.save_all_changes(alice)

    assert report.saved == [mine.id]
    assert [f.task_id for f in report.failed] == [bobs.id]
    assert "creator" in report.failed[0].reason

    stored = task_store.get_task(alice, mine.id)
    assert stored.completed is True
    assert stored.completion_percentage == 100
    assert task_store.get_task(bob, bobs.id).completion_percentage == 0
