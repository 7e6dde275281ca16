# src/openstud/tasks/workspace_tasks.py

from __future__ import annotations

import logging
from collections import defaultdict

from ..core.identity import Identity
from ..core.ports import TaskRepo
from .task_models import (
    INDIVIDUAL_WORKSPACE,
    AccessDeniedError,
    Activity,
    ActivityType,
    CategoryStat,
    Project,
    ProjectTaskStats,
    Task,
    TaskCategory,
    TaskWithProject,
)

logger = logging.getLogger(__name__)

UNKNOWN_PROJECT = "Unknown Project"
RECENT_ACTIVITY_LIMIT = 10
# A task updated within this window of its creation is reported as "created".
NEW_TASK_WINDOW_SECONDS = 60.0


def _scope_projects(repo: TaskRepo, identity: Identity, workspace_id: str) -> list[Project]:
    """Projects of a workspace scope, after the membership check."""
    if workspace_id != INDIVIDUAL_WORKSPACE:
        if repo.get_member_role(workspace_id, identity.user_id) is None:
            raise AccessDeniedError("You are not a member of this workspace")
    return repo.list_projects(identity, workspace_id)


def get_workspace_tasks(repo: TaskRepo, identity: Identity, workspace_id: str) -> list[TaskWithProject]:
    """
    All tasks with a due date across the projects of a workspace, soonest first.

    workspace_id="individual" means the identity's personal projects.
    Each task is joined with its project name.
    """
    projects = _scope_projects(repo, identity, workspace_id)
    names = {p.id: p.name for p in projects}

    tasks = repo.list_tasks_for_projects(names.keys(), due_only=True)
    out = [TaskWithProject(task=t, project_name=names.get(t.project_id, UNKNOWN_PROJECT)) for t in tasks]

    logger.debug(
        "Workspace tasks ws=%s user=%s projects=%d tasks=%d",
        workspace_id,
        identity.user_id,
        len(projects),
        len(out),
    )
    return out


def _project_stats(project: Project, tasks: list[Task]) -> ProjectTaskStats:
    pcts = [t.completion_percentage for t in tasks]
    return ProjectTaskStats(
        project_id=project.id,
        name=project.name,
        total_tasks=len(tasks),
        completed_tasks=sum(1 for t in tasks if t.completed),
        avg_completion_percentage=(sum(pcts) / len(pcts)) if pcts else 0.0,
    )


def get_project_task_stats(repo: TaskRepo, identity: Identity, project_id: str) -> ProjectTaskStats:
    """Totals for one project the identity can access."""
    project = repo.get_project(identity, project_id)
    return _project_stats(project, repo.list_tasks_for_projects([project.id]))


def get_workspace_project_task_stats(
    repo: TaskRepo, identity: Identity, workspace_id: str
) -> list[ProjectTaskStats]:
    """Per-project totals: task count, completed count, average completion percentage."""
    projects = _scope_projects(repo, identity, workspace_id)
    if not projects:
        return []

    by_project: dict[str, list[Task]] = defaultdict(list)
    for t in repo.list_tasks_for_projects([p.id for p in projects]):
        by_project[t.project_id].append(t)

    return [_project_stats(p, by_project.get(p.id, [])) for p in projects]


def get_task_stats_by_category(
    repo: TaskRepo, identity: Identity, workspace_id: str | None = None
) -> list[CategoryStat]:
    """
    Average completion per task category.

    workspace_id=None covers every project the identity can see; otherwise one
    scope ("individual" or a team workspace, membership required).
    Tasks without a category count as "other". Ordered by first appearance.
    """
    if workspace_id is None:
        projects = repo.list_accessible_projects(identity)
    else:
        projects = _scope_projects(repo, identity, workspace_id)

    groups: dict[str, list[int]] = {}
    for t in repo.list_tasks_for_projects([p.id for p in projects]):
        key = (t.category or TaskCategory.OTHER).value
        groups.setdefault(key, []).append(t.completion_percentage)

    return [
        CategoryStat(
            name=key.capitalize(),
            total=len(pcts),
            avg_completion=round(sum(pcts) / len(pcts)),
        )
        for key, pcts in groups.items()
    ]


def _describe(task: Task, project_name: str) -> tuple[ActivityType, str]:
    if abs(task.updated_at - task.created_at) < NEW_TASK_WINDOW_SECONDS:
        return ActivityType.CREATED, f"Created task '{task.title}' in {project_name}"
    if task.completed:
        return ActivityType.COMPLETED, f"Completed task '{task.title}' in {project_name}"
    if task.completion_percentage > 0:
        return (
            ActivityType.PROGRESS,
            f"Updated progress to {task.completion_percentage}% on '{task.title}' in {project_name}",
        )
    return ActivityType.UPDATED, f"Updated task '{task.title}' in {project_name}"


def get_recent_activity(
    repo: TaskRepo,
    identity: Identity,
    workspace_id: str | None = None,
    *,
    limit: int = RECENT_ACTIVITY_LIMIT,
) -> list[Activity]:
    """
    Most recently updated tasks as an activity feed, newest first.

    Scope as for get_task_stats_by_category. The acting user is the task creator,
    falling back to the project owner for tasks without one.
    """
    if workspace_id is None:
        projects = repo.list_accessible_projects(identity)
    else:
        projects = _scope_projects(repo, identity, workspace_id)
    by_id = {p.id: p for p in projects}

    tasks = sorted(
        repo.list_tasks_for_projects(by_id.keys()),
        key=lambda t: t.updated_at,
        reverse=True,
    )[: max(0, limit)]

    out: list[Activity] = []
    for t in tasks:
        project = by_id.get(t.project_id)
        project_name = project.name if project else UNKNOWN_PROJECT
        kind, description = _describe(t, project_name)
        out.append(
            Activity(
                task_id=t.id,
                type=kind,
                description=description,
                at=t.updated_at,
                project_name=project_name,
                task_title=t.title,
                completion_percentage=t.completion_percentage,
                category=t.category,
                user_id=t.created_by or (project.user_id if project else None),
                is_workspace_activity=bool(project and project.workspace_id),
            )
        )
    return out
