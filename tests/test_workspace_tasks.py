# tests/test_workspace_tasks.py

from __future__ import annotations

import pytest

from openstud.core.identity import Identity
from openstud.tasks.task_models import AccessDeniedError, ActivityType, Project, Task, WorkspaceRole
from openstud.tasks.task_store import TaskStore
from openstud.tasks.workspace_tasks import (
    get_project_task_stats,
    get_recent_activity,
    get_task_stats_by_category,
    get_workspace_project_task_stats,
    get_workspace_tasks,
)


def test_workspace_tasks_only_dated_and_sorted(task_store: TaskStore, alice: Identity) -> None:
    essays = task_store.create_project(alice, name="Essays")
    labs = task_store.create_project(alice, name="Labs")
    task_store.create_task(alice, project_id=essays.id, title="Final essay", due_at=3000.0)
    task_store.create_task(alice, project_id=labs.id, title="Lab 1 writeup", due_at=1000.0)
    task_store.create_task(alice, project_id=labs.id, title="Someday reading")

    items = get_workspace_tasks(task_store, alice, "individual")

    assert [(i.task.title, i.project_name) for i in items] == [
        ("Lab 1 writeup", "Labs"),
        ("Final essay", "Essays"),
    ]


def test_workspace_tasks_team_scope_requires_membership(
    task_store: TaskStore, alice: Identity, bob: Identity
) -> None:
    ws = task_store.create_workspace(alice, name="Study group")
    project = task_store.create_project(alice, name="Group project", workspace_id=ws.id)
    task_store.create_task(alice, project_id=project.id, title="Slides", due_at=500.0)

    with pytest.raises(AccessDeniedError):
        get_workspace_tasks(task_store, bob, ws.id)

    task_store.add_workspace_member(alice, ws.id, "bob")
    assert [i.task.title for i in get_workspace_tasks(task_store, bob, ws.id)] == ["Slides"]
    # Team projects never leak into the personal scope.
    assert get_workspace_tasks(task_store, bob, "individual") == []


def test_project_stats(task_store: TaskStore, alice: Identity) -> None:
    busy = task_store.create_project(alice, name="Physics")
    empty = task_store.create_project(alice, name="Spanish")
    task_store.create_task(alice, project_id=busy.id, title="Homework 1", completion_percentage=100)
    task_store.create_task(alice, project_id=busy.id, title="Homework 2", completion_percentage=50)

    stats = {s.project_id: s for s in get_workspace_project_task_stats(task_store, alice, "individual")}

    assert stats[busy.id].name == "Physics"
    assert stats[busy.id].total_tasks == 2
    assert stats[busy.id].completed_tasks == 1
    assert stats[busy.id].avg_completion_percentage == pytest.approx(75.0)
    assert stats[empty.id].total_tasks == 0
    assert stats[empty.id].avg_completion_percentage == 0.0


def test_category_stats_cover_personal_and_team(
    task_store: TaskStore, alice: Identity, bob: Identity
) -> None:
    personal = task_store.create_project(alice, name="Biology")
    task_store.create_task(alice, project_id=personal.id, title="Cell quiz", category="exam", completion_percentage=40)
    task_store.create_task(alice, project_id=personal.id, title="Misc notes", completion_percentage=25)

    ws = task_store.create_workspace(bob, name="Exam crew")
    task_store.add_workspace_member(bob, ws.id, "alice")
    team = task_store.create_project(bob, name="Midterms", workspace_id=ws.id)
    task_store.create_task(bob, project_id=team.id, title="Mock exam", category="exam", completion_percentage=71)

    stats = {c.name: c for c in get_task_stats_by_category(task_store, alice)}

    assert set(stats) == {"Exam", "Other"}
    assert stats["Exam"].total == 2
    assert stats["Exam"].avg_completion == 56  # round(55.5)
    assert stats["Other"].avg_completion == 25


def test_single_project_stats_checks_access(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    project = task_store.create_project(alice, name="Chemistry")
    task_store.create_task(alice, project_id=project.id, title="Titration lab", completion_percentage=100)
    task_store.create_task(alice, project_id=project.id, title="Reading notes", completion_percentage=20)

    s = get_project_task_stats(task_store, alice, project.id)
    assert (s.name, s.total_tasks, s.completed_tasks) == ("Chemistry", 2, 1)
    assert s.avg_completion_percentage == pytest.approx(60.0)

    with pytest.raises(AccessDeniedError):
        get_project_task_stats(task_store, bob, project.id)


def test_category_stats_workspace_filter(task_store: TaskStore, alice: Identity, bob: Identity) -> None:
    personal = task_store.create_project(alice, name="Biology")
    task_store.create_task(alice, project_id=personal.id, title="Cell quiz", category="exam", completion_percentage=40)

    ws = task_store.create_workspace(alice, name="Lab partners")
    team = task_store.create_project(alice, name="Joint lab", workspace_id=ws.id)
    task_store.create_task(alice, project_id=team.id, title="Lab report", category="lab", completion_percentage=90)

    assert [c.name for c in get_task_stats_by_category(task_store, alice, "individual")] == ["Exam"]
    assert [c.name for c in get_task_stats_by_category(task_store, alice, ws.id)] == ["Lab"]
    assert {c.name for c in get_task_stats_by_category(task_store, alice)} == {"Exam", "Lab"}

    with pytest.raises(AccessDeniedError):
        get_task_stats_by_category(task_store, bob, ws.id)


class InMemoryTaskRepo:
    """
    Read-only TaskRepo over fixed projects/tasks, so activity tests control timestamps.
    """

    def __init__(self, projects: list[Project], tasks: list[Task]) -> None:
        self.projects = projects
        self.tasks = tasks

    def get_member_role(self, workspace_id, user_id):
        return WorkspaceRole.MEMBER

    def get_project(self, identity, project_id):
        return next(p for p in self.projects if p.id == project_id)

    def list_projects(self, identity, workspace_id="individual"):
        if workspace_id == "individual":
            return [p for p in self.projects if p.workspace_id is None]
        return [p for p in self.projects if p.workspace_id == workspace_id]

    def list_accessible_projects(self, identity):
        return list(self.projects)

    def list_tasks_for_projects(self, project_ids, *, due_only=False):
        ids = set(project_ids)
        return [t for t in self.tasks if t.project_id in ids]

    def update_task(self, identity, task_id, fields):
        raise NotImplementedError


def _task(task_id: str, project_id: str, *, created: float, updated: float, pct: int = 0, by: str | None = "alice") -> Task:
    return Task(
        id=task_id,
        project_id=project_id,
        title=f"Task {task_id}",
        description=None,
        completed=pct == 100,
        completion_percentage=pct,
        due_at=None,
        priority=None,
        category=None,
        created_by=by,
        created_at=created,
        updated_at=updated,
    )


def test_recent_activity_types_and_order() -> None:
    personal = Project(id="p1", name="Maths", description=None, user_id="alice", workspace_id=None, created_at=0.0)
    team = Project(id="p2", name="Group essay", description=None, user_id="bob", workspace_id="w1", created_at=0.0)
    repo = InMemoryTaskRepo(
        [personal, team],
        [
            _task("new", "p1", created=1000.0, updated=1010.0),
            _task("done", "p1", created=0.0, updated=5000.0, pct=100),
            _task("half", "p2", created=0.0, updated=4000.0, pct=50, by=None),
            _task("edit", "p2", created=0.0, updated=3000.0),
        ],
    )

    feed = get_recent_activity(repo, Identity(user_id="alice"))

    assert [(a.task_id, a.type) for a in feed] == [
        ("done", ActivityType.COMPLETED),
        ("half", ActivityType.PROGRESS),
        ("edit", ActivityType.UPDATED),
        ("new", ActivityType.CREATED),
    ]
    assert feed[0].description == "Completed task 'Task done' in Maths"
    assert feed[1].description == "Updated progress to 50% on 'Task half' in Group essay"
    assert feed[1].user_id == "bob"  # no creator: project owner
    assert feed[1].is_workspace_activity is True
    assert feed[0].is_workspace_activity is False

    assert [a.task_id for a in get_recent_activity(repo, Identity(user_id="alice"), "w1")] == ["half", "edit"]
    assert len(get_recent_activity(repo, Identity(user_id="alice"), limit=2)) == 2


def test_recent_activity_on_real_store(task_store: TaskStore, alice: Identity) -> None:
    project = task_store.create_project(alice, name="Economics")
    task_store.create_task(alice, project_id=project.id, title="Supply curves")

    (activity,) = get_recent_activity(task_store, alice, "individual")
    assert activity.type == ActivityType.CREATED
    assert activity.description == "Created task 'Supply curves' in Economics"
