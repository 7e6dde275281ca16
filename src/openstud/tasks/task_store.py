# src/openstud/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from ..core.identity import Identity
from .task_fields import reconcile_completion, validate_task_fields
from .task_models import (
    INDIVIDUAL_WORKSPACE,
    AccessDeniedError,
    NotFoundError,
    Project,
    Task,
    TaskCategory,
    TaskPriority,
    Workspace,
    WorkspaceMember,
    WorkspaceRole,
)

logger = logging.getLogger(__name__)

NAME_MIN_LEN = 3
NAME_MAX_LEN = 50
# Shared bounds for workspace and project names.


def _clean_name(name: str | None, kind: str) -> str:
    name = (name or "").strip()
    if len(name) < NAME_MIN_LEN:
        raise ValueError(f"{kind} name must be at least {NAME_MIN_LEN} characters")
    if len(name) > NAME_MAX_LEN:
        raise ValueError(f"{kind} name must not exceed {NAME_MAX_LEN} characters")
    return name


def _new_id() -> str:
    return uuid.uuid4().hex


class TaskStore:
    """
    SQLite store for users, workspaces, projects and tasks.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing task columns
    - add columns with ALTER TABLE only when needed

    Authorization happens here, on every call, against the explicit Identity.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "openstud.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    email TEXT,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS workspaces (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    owner_id TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS workspace_members (
                    workspace_id TEXT NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'MEMBER',
                    joined_at REAL NOT NULL,
                    PRIMARY KEY (workspace_id, user_id)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    user_id TEXT NOT NULL,
                    workspace_id TEXT REFERENCES workspaces(id) ON DELETE CASCADE,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT,
                    completed INTEGER NOT NULL DEFAULT 0,
                    completion_percentage INTEGER NOT NULL DEFAULT 0,
                    due_at REAL,
                    priority TEXT,
                    category TEXT,
                    created_by TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing task columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("completion_percentage", "INTEGER NOT NULL DEFAULT 0")
            add_col("due_at", "REAL")
            add_col("priority", "TEXT")
            add_col("category", "TEXT")
            add_col("created_by", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks(due_at)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_projects_scope ON projects(workspace_id, user_id)"
            )

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        priority = row["priority"]
        category = row["category"]
        return Task(
            id=str(row["id"]),
            project_id=str(row["project_id"]),
            title=str(row["title"] or ""),
            description=row["description"],
            completed=bool(row["completed"]),
            completion_percentage=int(row["completion_percentage"] or 0),
            due_at=float(row["due_at"]) if row["due_at"] is not None else None,
            priority=TaskPriority(priority) if priority else None,
            category=TaskCategory(category) if category else None,
            created_by=row["created_by"],
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=str(row["id"]),
            name=str(row["name"]),
            description=row["description"],
            user_id=str(row["user_id"]),
            workspace_id=row["workspace_id"],
            created_at=float(row["created_at"] or 0.0),
        )

    @staticmethod
    def _row_to_workspace(row: sqlite3.Row) -> Workspace:
        return Workspace(
            id=str(row["id"]),
            name=str(row["name"]),
            description=row["description"],
            owner_id=str(row["owner_id"]),
            created_at=float(row["created_at"] or 0.0),
        )

    @staticmethod
    def _column_values(fields: Mapping[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, value in fields.items():
            if key == "completed":
                out[key] = 1 if value else 0
            elif key in ("priority", "category"):
                out[key] = value.value if value is not None else None
            else:
                out[key] = value
        return out

    def _role_in(self, conn: sqlite3.Connection, workspace_id: str, user_id: str) -> WorkspaceRole | None:
        row = conn.execute(
            "SELECT role FROM workspace_members WHERE workspace_id = ? AND user_id = ?",
            (workspace_id, user_id),
        ).fetchone()
        return WorkspaceRole.from_db(row["role"]) if row else None

    def _load_project(self, conn: sqlite3.Connection, project_id: str) -> Project:
        row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        if row is None:
            raise NotFoundError("Project not found")
        return self._row_to_project(row)

    def _require_project_access(
        self,
        conn: sqlite3.Connection,
        identity: Identity,
        project: Project,
        *,
        team_message: str = "You are not a member of this project's workspace",
    ) -> WorkspaceRole | None:
        """Personal project: owner only. Team project: any member. Returns the member role."""
        if project.workspace_id is None:
            if project.user_id != identity.user_id:
                raise AccessDeniedError("You don't have access to this project")
            return None

        role = self._role_in(conn, project.workspace_id, identity.user_id)
        if role is None:
            raise AccessDeniedError(team_message)
        return role

    # ---- users ----

    def ensure_user(self, identity: Identity) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO users(id, name, email, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = COALESCE(excluded.name, users.name),
                    email = COALESCE(excluded.email, users.email)
                """,
                (identity.user_id, identity.name, identity.email, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    # ---- workspaces ----

    def create_workspace(
        self, identity: Identity, *, name: str, description: str | None = None
    ) -> Workspace:
        """Create a team workspace; the creator becomes its OWNER."""
        name = _clean_name(name, "Workspace")

        now = time.time()
        ws = Workspace(
            id=_new_id(),
            name=name,
            description=description,
            owner_id=identity.user_id,
            created_at=now,
        )

        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO workspaces(id, name, description, owner_id, created_at) VALUES (?, ?, ?, ?, ?)",
                (ws.id, ws.name, ws.description, ws.owner_id, ws.created_at),
            )
            conn.execute(
                "INSERT INTO workspace_members(workspace_id, user_id, role, joined_at) VALUES (?, ?, ?, ?)",
                (ws.id, identity.user_id, WorkspaceRole.OWNER.value, now),
            )
            conn.commit()
        finally:
            conn.close()

        logger.info("Workspace created id=%s owner=%s", ws.id, identity.user_id)
        return ws

    def list_workspaces(self, identity: Identity) -> list[Workspace]:
        """Team workspaces the identity is a member of (oldest first)."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT w.*
                FROM workspaces w
                JOIN workspace_members m ON m.workspace_id = w.id
                WHERE m.user_id = ?
                ORDER BY w.created_at ASC
                """,
                (identity.user_id,),
            ).fetchall()
            return [self._row_to_workspace(r) for r in rows]
        finally:
            conn.close()

    def get_member_role(self, workspace_id: str, user_id: str) -> WorkspaceRole | None:
        conn = self._get_conn()
        try:
            return self._role_in(conn, workspace_id, user_id)
        finally:
            conn.close()

    def add_workspace_member(
        self,
        identity: Identity,
        workspace_id: str,
        user_id: str,
        role: WorkspaceRole = WorkspaceRole.MEMBER,
    ) -> WorkspaceMember:
        if not user_id or not user_id.strip():
            raise ValueError("user_id is required")

        conn = self._get_conn()
        try:
            if conn.execute("SELECT 1 FROM workspaces WHERE id = ?", (workspace_id,)).fetchone() is None:
                raise NotFoundError("Workspace not found or you don't have access to it")

            actor_role = self._role_in(conn, workspace_id, identity.user_id)
            if actor_role is None:
                raise NotFoundError("Workspace not found or you don't have access to it")
            if not actor_role.is_admin:
                raise AccessDeniedError("You don't have permission to add members to this workspace")
            if role == WorkspaceRole.OWNER and actor_role != WorkspaceRole.OWNER:
                raise AccessDeniedError("Only workspace owners can add owners")

            if self._role_in(conn, workspace_id, user_id) is not None:
                raise ValueError("User is already a member of this workspace")

            member = WorkspaceMember(
                workspace_id=workspace_id,
                user_id=user_id.strip(),
                role=role,
                joined_at=time.time(),
            )
            conn.execute(
                "INSERT INTO workspace_members(workspace_id, user_id, role, joined_at) VALUES (?, ?, ?, ?)",
                (member.workspace_id, member.user_id, member.role.value, member.joined_at),
            )
            conn.commit()
        finally:
            conn.close()

        logger.info("Workspace member added ws=%s user=%s role=%s", workspace_id, user_id, role.value)
        return member

    def list_workspace_members(self, identity: Identity, workspace_id: str) -> list[WorkspaceMember]:
        conn = self._get_conn()
        try:
            if self._role_in(conn, workspace_id, identity.user_id) is None:
                raise NotFoundError("Workspace not found or you don't have access to it")
            rows = conn.execute(
                "SELECT * FROM workspace_members WHERE workspace_id = ? ORDER BY joined_at ASC",
                (workspace_id,),
            ).fetchall()
            return [
                WorkspaceMember(
                    workspace_id=str(r["workspace_id"]),
                    user_id=str(r["user_id"]),
                    role=WorkspaceRole.from_db(r["role"]),
                    joined_at=float(r["joined_at"] or 0.0),
                )
                for r in rows
            ]
        finally:
            conn.close()

    def _require_role(
        self, conn: sqlite3.Connection, identity: Identity, workspace_id: str
    ) -> WorkspaceRole:
        role = self._role_in(conn, workspace_id, identity.user_id)
        if role is None:
            raise NotFoundError("Workspace not found or you don't have access to it")
        return role

    @staticmethod
    def _owner_count(conn: sqlite3.Connection, workspace_id: str) -> int:
        (n,) = conn.execute(
            "SELECT COUNT(*) FROM workspace_members WHERE workspace_id = ? AND role = ?",
            (workspace_id, WorkspaceRole.OWNER.value),
        ).fetchone()
        return int(n)

    def get_workspace(self, identity: Identity, workspace_id: str) -> Workspace:
        conn = self._get_conn()
        try:
            self._require_role(conn, identity, workspace_id)
            row = conn.execute("SELECT * FROM workspaces WHERE id = ?", (workspace_id,)).fetchone()
            if row is None:
                raise NotFoundError("Workspace not found or you don't have access to it")
            return self._row_to_workspace(row)
        finally:
            conn.close()

    def update_workspace(
        self,
        identity: Identity,
        workspace_id: str,
        *,
        name: str,
        description: str | None = None,
    ) -> Workspace:
        """Rename / re-describe a workspace (OWNER or ADMIN)."""
        name = _clean_name(name, "Workspace")

        conn = self._get_conn()
        try:
            if not self._require_role(conn, identity, workspace_id).is_admin:
                raise AccessDeniedError("You don't have permission to update this workspace")
            conn.execute(
                "UPDATE workspaces SET name = ?, description = ? WHERE id = ?",
                (name, description, workspace_id),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM workspaces WHERE id = ?", (workspace_id,)).fetchone()
        finally:
            conn.close()

        logger.info("Workspace updated id=%s by=%s", workspace_id, identity.user_id)
        return self._row_to_workspace(row)

    def delete_workspace(self, identity: Identity, workspace_id: str) -> None:
        """Delete a workspace with its members, projects and tasks (OWNER only)."""
        conn = self._get_conn()
        try:
            if self._require_role(conn, identity, workspace_id) != WorkspaceRole.OWNER:
                raise AccessDeniedError("Only workspace owners can delete workspaces")
            conn.execute("DELETE FROM workspaces WHERE id = ?", (workspace_id,))
            conn.commit()
        finally:
            conn.close()

        logger.info("Workspace deleted id=%s by=%s", workspace_id, identity.user_id)

    def remove_workspace_member(self, identity: Identity, workspace_id: str, user_id: str) -> None:
        """
        Remove a member.

        Owners may remove anyone, admins only plain members, members nobody.
        The last owner can never be removed.
        """
        conn = self._get_conn()
        try:
            actor_role = self._require_role(conn, identity, workspace_id)
            target_role = self._role_in(conn, workspace_id, user_id)
            if target_role is None:
                raise NotFoundError("Member not found in this workspace")

            if actor_role == WorkspaceRole.MEMBER:
                raise AccessDeniedError("You don't have permission to remove members")
            if actor_role == WorkspaceRole.ADMIN and target_role != WorkspaceRole.MEMBER:
                raise AccessDeniedError("You don't have permission to remove this member")
            if target_role == WorkspaceRole.OWNER and self._owner_count(conn, workspace_id) <= 1:
                raise ValueError("Cannot remove the last owner of the workspace")

            conn.execute(
                "DELETE FROM workspace_members WHERE workspace_id = ? AND user_id = ?",
                (workspace_id, user_id),
            )
            conn.commit()
        finally:
            conn.close()

        logger.info("Workspace member removed ws=%s user=%s by=%s", workspace_id, user_id, identity.user_id)

    def update_workspace_member_role(
        self,
        identity: Identity,
        workspace_id: str,
        user_id: str,
        role: WorkspaceRole,
    ) -> WorkspaceMember:
        """Change a member's role (OWNER only); a workspace always keeps one owner."""
        conn = self._get_conn()
        try:
            if self._require_role(conn, identity, workspace_id) != WorkspaceRole.OWNER:
                raise AccessDeniedError("Only workspace owners can change member roles")

            row = conn.execute(
                "SELECT * FROM workspace_members WHERE workspace_id = ? AND user_id = ?",
                (workspace_id, user_id),
            ).fetchone()
            if row is None:
                raise NotFoundError("Member not found in this workspace")

            current = WorkspaceRole.from_db(row["role"])
            if (
                current == WorkspaceRole.OWNER
                and role != WorkspaceRole.OWNER
                and self._owner_count(conn, workspace_id) <= 1
            ):
                raise ValueError("Cannot change the role of the last owner")

            conn.execute(
                "UPDATE workspace_members SET role = ? WHERE workspace_id = ? AND user_id = ?",
                (role.value, workspace_id, user_id),
            )
            conn.commit()
        finally:
            conn.close()

        logger.info("Workspace role changed ws=%s user=%s role=%s", workspace_id, user_id, role.value)
        return WorkspaceMember(
            workspace_id=workspace_id,
            user_id=user_id,
            role=role,
            joined_at=float(row["joined_at"] or 0.0),
        )

    # ---- projects ----

    def create_project(
        self,
        identity: Identity,
        *,
        name: str,
        description: str | None = None,
        workspace_id: str | None = None,
    ) -> Project:
        name = _clean_name(name, "Project")

        if workspace_id == INDIVIDUAL_WORKSPACE:
            workspace_id = None

        project = Project(
            id=_new_id(),
            name=name,
            description=description,
            user_id=identity.user_id,
            workspace_id=workspace_id,
            created_at=time.time(),
        )

        conn = self._get_conn()
        try:
            if workspace_id is not None and self._role_in(conn, workspace_id, identity.user_id) is None:
                raise AccessDeniedError("You don't have access to this team")
            conn.execute(
                """
                INSERT INTO projects(id, name, description, user_id, workspace_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    project.id,
                    project.name,
                    project.description,
                    project.user_id,
                    project.workspace_id,
                    project.created_at,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Project created id=%s workspace=%s", project.id, workspace_id)
        return project

    def get_project(self, identity: Identity, project_id: str) -> Project:
        conn = self._get_conn()
        try:
            project = self._load_project(conn, project_id)
            self._require_project_access(
                conn, identity, project, team_message="You don't have access to this project"
            )
            return project
        finally:
            conn.close()

    def delete_project(self, identity: Identity, project_id: str) -> Project:
        """
        Delete a project and its tasks.

        Personal project: the owner. Team project: a workspace OWNER/ADMIN.
        """
        conn = self._get_conn()
        try:
            project = self._load_project(conn, project_id)
            if project.workspace_id is None:
                if project.user_id != identity.user_id:
                    raise AccessDeniedError("You don't have permission to delete this project")
            else:
                role = self._role_in(conn, project.workspace_id, identity.user_id)
                if role is None:
                    raise AccessDeniedError("You don't have access to this workspace")
                if not role.is_admin:
                    raise AccessDeniedError("You don't have permission to delete this project")

            conn.execute("DELETE FROM tasks WHERE project_id = ?", (project_id,))
            conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            conn.commit()
        finally:
            conn.close()

        logger.info("Project deleted id=%s by=%s", project_id, identity.user_id)
        return project

    def list_projects(self, identity: Identity, workspace_id: str = INDIVIDUAL_WORKSPACE) -> list[Project]:
        """
        Projects of one scope.

        - "individual": the identity's personal projects
        - otherwise: all projects of the team workspace (membership required)
        """
        conn = self._get_conn()
        try:
            if workspace_id == INDIVIDUAL_WORKSPACE:
                rows = conn.execute(
                    """
                    SELECT * FROM projects
                    WHERE user_id = ? AND workspace_id IS NULL
                    ORDER BY created_at ASC
                    """,
                    (identity.user_id,),
                ).fetchall()
            else:
                if self._role_in(conn, workspace_id, identity.user_id) is None:
                    raise AccessDeniedError("You are not a member of this workspace")
                rows = conn.execute(
                    "SELECT * FROM projects WHERE workspace_id = ? ORDER BY created_at ASC",
                    (workspace_id,),
                ).fetchall()
            return [self._row_to_project(r) for r in rows]
        finally:
            conn.close()

    def list_accessible_projects(self, identity: Identity) -> list[Project]:
        """Personal projects plus projects of every workspace the identity belongs to."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT p.*
                FROM projects p
                WHERE (p.workspace_id IS NULL AND p.user_id = ?)
                   OR p.workspace_id IN (
                        SELECT workspace_id FROM workspace_members WHERE user_id = ?
                   )
                ORDER BY p.created_at ASC
                """,
                (identity.user_id, identity.user_id),
            ).fetchall()
            return [self._row_to_project(r) for r in rows]
        finally:
            conn.close()

    # ---- tasks ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def create_task(
        self,
        identity: Identity,
        *,
        project_id: str,
        title: str,
        **fields: Any,
    ) -> Task:
        clean = validate_task_fields({"title": title, **fields})
        clean = reconcile_completion(clean, clean, current_percentage=None)

        now = time.time()
        task = Task(
            id=_new_id(),
            project_id=project_id,
            title=clean["title"],
            description=clean.get("description"),
            completed=bool(clean.get("completed", False)),
            completion_percentage=int(clean.get("completion_percentage", 0)),
            due_at=clean.get("due_at"),
            priority=clean.get("priority"),
            category=clean.get("category"),
            created_by=identity.user_id,
            created_at=now,
            updated_at=now,
        )

        conn = self._get_conn()
        try:
            project = self._load_project(conn, project_id)
            self._require_project_access(conn, identity, project)
            conn.execute(
                """
                INSERT INTO tasks(
                    id, project_id, title, description,
                    completed, completion_percentage, due_at,
                    priority, category, created_by, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.project_id,
                    task.title,
                    task.description,
                    1 if task.completed else 0,
                    task.completion_percentage,
                    task.due_at,
                    task.priority.value if task.priority else None,
                    task.category.value if task.category else None,
                    task.created_by,
                    task.created_at,
                    task.updated_at,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Task added id=%s project=%s", task.id, project_id)
        return task

    def get_task(self, identity: Identity, task_id: str) -> Task:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                raise NotFoundError("Task not found")
            task = self._row_to_task(row)
            project = self._load_project(conn, task.project_id)
            self._require_project_access(
                conn, identity, project, team_message="You don't have access to this project"
            )
            return task
        finally:
            conn.close()

    def update_task(self, identity: Identity, task_id: str, fields: Mapping[str, Any]) -> Task:
        """
        Apply a partial edit to one task.

        Rules:
        - the task must exist
        - a task with a recorded creator may only be edited by that creator
        - personal project: only the project owner
        - team project: any workspace member
        """
        edit = validate_task_fields(fields)

        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                raise NotFoundError("Task not found")
            current = self._row_to_task(row)

            if current.created_by and current.created_by != identity.user_id:
                raise AccessDeniedError("Only the task creator can edit this task")

            project = self._load_project(conn, current.project_id)
            self._require_project_access(
                conn, identity, project, team_message="You are not a member of this task's workspace"
            )

            merged = reconcile_completion(
                edit, dict(edit), current_percentage=current.completion_percentage
            )
            if not merged:
                return current

            values = self._column_values(merged)
            values["updated_at"] = time.time()
            assignments = ", ".join(f"{col} = ?" for col in values)
            conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*values.values(), task_id),
            )
            conn.commit()

            updated = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            logger.debug("Task updated id=%s fields=%s", task_id, sorted(merged))
            return self._row_to_task(updated)
        finally:
            conn.close()

    def delete_task(self, identity: Identity, task_id: str) -> Task:
        """
        Delete one task.

        Personal project: the owner may delete any task.
        Team project: the task creator, or a workspace OWNER/ADMIN.
        """
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                raise NotFoundError("Task not found")
            task = self._row_to_task(row)

            project = self._load_project(conn, task.project_id)
            role = self._require_project_access(conn, identity, project)
            if role is not None and task.created_by != identity.user_id and not role.is_admin:
                raise AccessDeniedError(
                    "Only task creators and workspace owners/admins can delete tasks"
                )

            conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
            logger.info("Task deleted id=%s by=%s", task_id, identity.user_id)
            return task
        finally:
            conn.close()

    def list_tasks(self, identity: Identity, project_id: str) -> list[Task]:
        """Tasks of one project, newest first."""
        conn = self._get_conn()
        try:
            project = self._load_project(conn, project_id)
            self._require_project_access(
                conn, identity, project, team_message="You don't have access to this project"
            )
            rows = conn.execute(
                "SELECT * FROM tasks WHERE project_id = ? ORDER BY created_at DESC",
                (project_id,),
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def list_tasks_for_projects(
        self, project_ids: Iterable[str], *, due_only: bool = False
    ) -> list[Task]:
        """
        Raw task query for aggregation (no access checks: callers pass project ids
        they already resolved for the identity).

        due_only=True keeps tasks with a due date, ordered by due date ascending.
        """
        ids = list(project_ids)
        if not ids:
            return []

        placeholders = ",".join("?" for _ in ids)
        where = f"project_id IN ({placeholders})"
        order = "created_at DESC"
        if due_only:
            where += " AND due_at IS NOT NULL"
            order = "due_at ASC, created_at ASC"

        conn = self._get_conn()
        try:
            rows = conn.execute(f"SELECT * FROM tasks WHERE {where} ORDER BY {order}", ids).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()
