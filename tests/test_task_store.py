# tests/test_task_store.py

from __future__ import annotations

import time

import pytest

from openstud.core.identity import Identity
from openstud.tasks.task_models import (
    AccessDeniedError,
    NotFoundError,
    TaskCategory,
    WorkspaceRole,
)
from openstud.tasks.task_store import TaskStore


def test_personal_project_task_crud(task_store: TaskStore, alice: Identity) -> None:
    project = task_store.create_project(alice, name="Calculus", workspace_id="individual")
    assert project.workspace_id is None
    assert project.is_personal

    task = task_store.create_task(
        alice, project_id=project.id, title="Problem set 3", category="assignment", due_at=time.time()
    )
    assert task.created_by == "alice"
    assert task.category == TaskCategory.ASSIGNMENT
    assert task_store.count_tasks() == 1

    updated = task_store.update_task(alice, task.id, {"completion_percentage": 100})
    assert updated.completed is True
    assert updated.completion_percentage == 100

    reopened = task_store.update_task(alice, task.id, {"completed": False})
    assert reopened.completed is False
    assert reopened.completion_percentage == 0

    assert task_store.delete_task(alice, task.id).id == task.id
    assert task_store.list_tasks(alice, project.id) == []


def test_schema_survives_reopen(task_store: TaskStore, settings, alice: Identity) -> None:
    project = task_store.create_project(alice, name="History")
    task_store.create_task(alice, project_id=project.id, title="Read chapter 2")

    reopened = TaskStore(settings.tasks_db_path)
    assert [t.title for t in reopened.list_tasks(alice, project.id)] == ["Read chapter 2"]


def test_project_name_bounds(task_store: TaskStore, alice: Identity) -> None:
    with pytest.raises(ValueError):
        task_store.create_project(alice, name="ab")
    with pytest.raises(ValueError):
        task_store.create_project(alice, name="x" * 51)


def test_update_missing_task_raises_not_found(task_store: TaskStore, alice: Identity) -> None:
    with pytest.raises(NotFoundError, match="Task not found"):
        task_store.update_task(alice, "nope", {"completed": True})


def test_personal_project_is_private(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    project = task_store.create_project(alice, name="Diary")
    task = task_store.create_task(alice, project_id=project.id, title="Reflect on week")

    with pytest.raises(AccessDeniedError):
        task_store.list_tasks(bob, project.id)
    with pytest.raises(AccessDeniedError):
        task_store.create_task(bob, project_id=project.id, title="Sneaky task")
    with pytest.raises(AccessDeniedError):
        task_store.update_task(bob, task.id, {"completion_percentage": 10})

    assert task_store.list_projects(bob) == []


def test_team_workspace_rules(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    ws = task_store.create_workspace(alice, name="Robotics club")
    assert task_store.get_member_role(ws.id, "alice") == WorkspaceRole.OWNER

    with pytest.raises(AccessDeniedError, match="You are not a member of this workspace"):
        task_store.list_projects(bob, ws.id)
    with pytest.raises(AccessDeniedError, match="You don't have access to this team"):
        task_store.create_project(bob, name="Rogue project", workspace_id=ws.id)

    task_store.add_workspace_member(alice, ws.id, "bob")
    project = task_store.create_project(bob, name="Motor control", workspace_id=ws.id)
    assert [p.id for p in task_store.list_projects(alice, ws.id)] == [project.id]

    bobs_task = task_store.create_task(bob, project_id=project.id, title="Tune PID loop")
    with pytest.raises(AccessDeniedError, match="Only the task creator can edit this task"):
        task_store.update_task(alice, bobs_task.id, {"completion_percentage": 50})

    assert task_store.update_task(bob, bobs_task.id, {"completion_percentage": 50}).completion_percentage == 50

    # Owners may delete any team task; members only their own.
    alices_task = task_store.create_task(alice, project_id=project.id, title="Order parts")
    with pytest.raises(AccessDeniedError):
        task_store.delete_task(bob, alices_task.id)
    task_store.delete_task(alice, bobs_task.id)


def test_member_management(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    ws = task_store.create_workspace(alice, name="Chem lab")
    task_store.add_workspace_member(alice, ws.id, "bob")

    with pytest.raises(ValueError, match="already a member"):
        task_store.add_workspace_member(alice, ws.id, "bob")
    with pytest.raises(AccessDeniedError):
        task_store.add_workspace_member(bob, ws.id, "carol")

    task_store.add_workspace_member(alice, ws.id, "dave", WorkspaceRole.ADMIN)
    dave = Identity(user_id="dave")
    with pytest.raises(AccessDeniedError, match="Only workspace owners"):
        task_store.add_workspace_member(dave, ws.id, "erin", WorkspaceRole.OWNER)
    task_store.add_workspace_member(dave, ws.id, "erin")

    members = {m.user_id: m.role for m in task_store.list_workspace_members(alice, ws.id)}
    assert members == {
        "alice": WorkspaceRole.OWNER,
        "bob": WorkspaceRole.MEMBER,
        "dave": WorkspaceRole.ADMIN,
        "erin": WorkspaceRole.MEMBER,
    }
    assert [w.id for w in task_store.list_workspaces(bob)] == [ws.id]


def test_removed_member_loses_edit_access(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    ws = task_store.create_workspace(alice, name="Debate team")
    task_store.add_workspace_member(alice, ws.id, "bob")
    project = task_store.create_project(alice, name="Finals prep", workspace_id=ws.id)
    task = task_store.create_task(bob, project_id=project.id, title="Research topic")

    task_store.remove_workspace_member(alice, ws.id, "bob")

    with pytest.raises(AccessDeniedError, match="not a member of this task's workspace"):
        task_store.update_task(bob, task.id, {"completed": True})


def test_remove_member_permissions(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    ws = task_store.create_workspace(alice, name="Physics club")
    task_store.add_workspace_member(alice, ws.id, "bob", WorkspaceRole.ADMIN)
    task_store.add_workspace_member(alice, ws.id, "carol")
    task_store.add_workspace_member(alice, ws.id, "dave", WorkspaceRole.ADMIN)
    carol = Identity(user_id="carol")

    with pytest.raises(AccessDeniedError, match="permission to remove members"):
        task_store.remove_workspace_member(carol, ws.id, "bob")
    with pytest.raises(AccessDeniedError, match="permission to remove this member"):
        task_store.remove_workspace_member(bob, ws.id, "dave")
    with pytest.raises(NotFoundError, match="Member not found"):
        task_store.remove_workspace_member(alice, ws.id, "nobody")
    with pytest.raises(ValueError, match="last owner"):
        task_store.remove_workspace_member(alice, ws.id, "alice")

    task_store.remove_workspace_member(bob, ws.id, "carol")
    assert task_store.get_member_role(ws.id, "carol") is None
    with pytest.raises(AccessDeniedError):
        task_store.list_projects(carol, ws.id)


def test_member_role_changes_keep_an_owner(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    ws = task_store.create_workspace(alice, name="Art studio")
    task_store.add_workspace_member(alice, ws.id, "bob", WorkspaceRole.ADMIN)

    with pytest.raises(AccessDeniedError, match="Only workspace owners can change member roles"):
        task_store.update_workspace_member_role(bob, ws.id, "bob", WorkspaceRole.OWNER)
    with pytest.raises(ValueError, match="last owner"):
        task_store.update_workspace_member_role(alice, ws.id, "alice", WorkspaceRole.MEMBER)

    member = task_store.update_workspace_member_role(alice, ws.id, "bob", WorkspaceRole.OWNER)
    assert member.role == WorkspaceRole.OWNER

    # Two owners now: alice may step down.
    task_store.update_workspace_member_role(alice, ws.id, "alice", WorkspaceRole.MEMBER)
    assert task_store.get_member_role(ws.id, "alice") == WorkspaceRole.MEMBER


def test_update_and_delete_workspace(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    ws = task_store.create_workspace(alice, name="Old name")
    task_store.add_workspace_member(alice, ws.id, "bob")
    project = task_store.create_project(alice, name="Shared notes", workspace_id=ws.id)
    task = task_store.create_task(alice, project_id=project.id, title="Summarize lecture")

    with pytest.raises(AccessDeniedError, match="permission to update"):
        task_store.update_workspace(bob, ws.id, name="Hijacked")
    with pytest.raises(ValueError):
        task_store.update_workspace(alice, ws.id, name="ab")

    assert task_store.update_workspace(alice, ws.id, name="New name").name == "New name"
    assert task_store.get_workspace(bob, ws.id).name == "New name"
    with pytest.raises(NotFoundError):
        task_store.get_workspace(Identity(user_id="carol"), ws.id)

    with pytest.raises(AccessDeniedError, match="Only workspace owners can delete workspaces"):
        task_store.delete_workspace(bob, ws.id)

    task_store.delete_workspace(alice, ws.id)
    assert task_store.list_workspaces(alice) == []
    with pytest.raises(NotFoundError):
        task_store.get_task(alice, task.id)


def test_delete_project_rules(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    personal = task_store.create_project(alice, name="Piano practice")
    task_store.create_task(alice, project_id=personal.id, title="Scales")
    with pytest.raises(AccessDeniedError, match="permission to delete this project"):
        task_store.delete_project(bob, personal.id)

    ws = task_store.create_workspace(alice, name="Band")
    task_store.add_workspace_member(alice, ws.id, "bob")
    team = task_store.create_project(bob, name="Setlist", workspace_id=ws.id)
    with pytest.raises(AccessDeniedError, match="permission to delete this project"):
        task_store.delete_project(bob, team.id)
    with pytest.raises(AccessDeniedError, match="access to this workspace"):
        task_store.delete_project(Identity(user_id="carol"), team.id)

    task_store.delete_project(alice, team.id)
    task_store.delete_project(alice, personal.id)
    assert task_store.list_projects(alice) == []
    assert task_store.count_tasks() == 0
    with pytest.raises(NotFoundError, match="Project not found"):
        task_store.delete_project(alice, personal.id)
