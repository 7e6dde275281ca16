# src/openstud/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

INDIVIDUAL_WORKSPACE = "individual"
# Pseudo workspace id for a user's private scope (projects without a workspace).


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskCategory(StrEnum):
    ASSIGNMENT = "assignment"
    EXAM = "exam"
    PRESENTATION = "presentation"
    LAB = "lab"
    READING = "reading"
    PROJECT = "project"
    STUDY = "study"
    OTHER = "other"


class WorkspaceRole(StrEnum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

    @property
    def is_admin(self) -> bool:
        return self in (WorkspaceRole.OWNER, WorkspaceRole.ADMIN)

    @classmethod
    def from_db(cls, raw: str | None) -> WorkspaceRole:
        if not raw:
            return cls.MEMBER
        try:
            return cls(raw.upper())
        except ValueError:
            return cls.MEMBER


class ActivityType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    COMPLETED = "completed"
    PROGRESS = "progress"


class NotFoundError(LookupError):
    """A task/project/workspace/conversation does not exist."""


class AccessDeniedError(PermissionError):
    """The identity may not read or change the target."""


class InvalidTaskFieldError(ValueError):
    """A task field is unknown or its value is out of range."""


@dataclass(slots=True)
class Workspace:
    id: str
    name: str
    description: str | None
    owner_id: str
    created_at: float


@dataclass(slots=True)
class WorkspaceMember:
    workspace_id: str
    user_id: str
    role: WorkspaceRole
    joined_at: float


@dataclass(slots=True)
class Project:
    id: str
    name: str
    description: str | None
    user_id: str
    workspace_id: str | None
    created_at: float

    @property
    def is_personal(self) -> bool:
        return self.workspace_id is None


@dataclass(slots=True)
class Task:
    id: str
    project_id: str
    title: str
    description: str | None

    completed: bool
    completion_percentage: int
    due_at: float | None

    priority: TaskPriority | None
    category: TaskCategory | None

    created_by: str | None
    created_at: float
    updated_at: float


@dataclass(slots=True, frozen=True)
class TaskWithProject:
    """A task joined with the name of the project it belongs to."""

    task: Task
    project_name: str


@dataclass(slots=True, frozen=True)
class ProjectTaskStats:
    project_id: str
    name: str
    total_tasks: int
    completed_tasks: int
    avg_completion_percentage: float


@dataclass(slots=True, frozen=True)
class CategoryStat:
    name: str
    total: int
    # Rounded average completion percentage (what the dashboard chart plots).
    avg_completion: int


@dataclass(slots=True, frozen=True)
class Activity:
    """One entry of the recent-activity feed, derived from a task's latest state."""

    task_id: str
    type: ActivityType
    description: str
    at: float
    project_name: str
    task_title: str
    completion_percentage: int
    category: TaskCategory | None
    user_id: str | None
    is_workspace_activity: bool
