# src/openstud/tasks/task_changes.py

"""
Pending task changes.

Lets a user stage edits to several tasks (progress sliders, checkboxes, ...)
and commit them as one batch, or throw them away.

Per-task lifecycle:
  ABSENT -> PENDING        first edit
  PENDING -> PENDING       further edits merge into the same entry
  PENDING -> ABSENT        successful commit, or discard

Key invariants:
- at most one entry per task id; later keys override earlier ones on merge,
- malformed edits are rejected before they reach the store,
- completed/completion_percentage never contradict each other in an entry,
- a failed commit leaves its entry pending and untouched.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..core.identity import Identity
from ..core.ports import TaskUpdater
from .task_fields import reconcile_completion, validate_task_fields

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingChange:
    task_id: str
    fields: dict[str, Any]


@dataclass(slots=True, frozen=True)
class ChangeFailure:
    task_id: str
    reason: str


@dataclass(slots=True)
class SaveReport:
    """Outcome of one save_all_changes() run."""

    saved: list[str] = field(default_factory=list)
    failed: list[ChangeFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def attempted(self) -> int:
        return len(self.saved) + len(self.failed)


def save_button_label(count: int) -> str:
    return f"Save {count} {'Change' if count == 1 else 'Changes'}"


class ChangeStore:
    """
    In-memory mapping task_id -> pending fields.

    Insertion order is kept for listing. Never persisted.
    Only TaskChanges holds a ChangeStore; everything else reads through it.
    """

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add_change(self, task_id: str, fields: Mapping[str, Any]) -> None:
        if not isinstance(task_id, str) or not task_id.strip():
            raise ValueError("task_id is required")
        task_id = task_id.strip()

        # Validate first: a rejected edit must leave the store untouched.
        edit = validate_task_fields(fields)

        existing = self._entries.get(task_id)
        merged = {**existing, **edit} if existing is not None else dict(edit)
        self._entries[task_id] = reconcile_completion(edit, merged)

    def has_pending_changes(self) -> bool:
        return bool(self._entries)

    def list_pending_changes(self) -> list[PendingChange]:
        return [PendingChange(task_id=tid, fields=dict(f)) for tid, f in self._entries.items()]

    def get_change_for(self, task_id: str) -> dict[str, Any] | None:
        fields = self._entries.get(task_id.strip())
        return dict(fields) if fields is not None else None

    def remove(self, task_id: str) -> None:
        self._entries.pop(task_id, None)

    def clear(self) -> int:
        n = len(self._entries)
        self._entries.clear()
        return n


class TaskChanges:
    """
    Commit/discard controller that owns the session's ChangeStore.

    The persistence collaborator is any TaskUpdater; its update_task may be a plain
    function (run in a worker thread) or a coroutine function (awaited directly).
    """

    def __init__(self, updater: TaskUpdater) -> None:
        self._updater = updater
        self._store = ChangeStore()

    # ---- read access for rendering ----

    def __len__(self) -> int:
        return len(self._store)

    def has_pending_changes(self) -> bool:
        return self._store.has_pending_changes()

    def list_pending_changes(self) -> list[PendingChange]:
        return self._store.list_pending_changes()

    def get_change_for(self, task_id: str) -> dict[str, Any] | None:
        return self._store.get_change_for(task_id)

    # ---- mutation ----

    def add_change(self, task_id: str, fields: Mapping[str, Any]) -> None:
        self._store.add_change(task_id, fields)
        logger.debug("Pending change task_id=%s pending=%d", task_id, len(self._store))

    def discard_all_changes(self) -> int:
        """Drop every pending edit without contacting persistence. No undo."""
        n = self._store.clear()
        logger.info("Discarded %d pending task change(s)", n)
        return n

    async def _commit_one(self, identity: Identity, task_id: str, fields: dict[str, Any]) -> Any:
        update = self._updater.update_task
        if inspect.iscoroutinefunction(update):
            return await update(identity, task_id, fields)
        return await asyncio.to_thread(update, identity, task_id, fields)

    async def save_all_changes(self, identity: Identity) -> SaveReport:
        """
        Commit every pending edit, one task at a time.

        Continue-on-error: a failing task is recorded in the report and stays
        pending; the others are still attempted. Only committed entries are removed.
        An entry edited again while its commit was in flight stays pending
        with the newer fields.
        """
        report = SaveReport()
        snapshot = self._store.list_pending_changes()
        if not snapshot:
            logger.info("No changes to save")
            return report

        logger.info("Saving %d task change(s) for user=%s", len(snapshot), identity.user_id)

        for change in snapshot:
            try:
                await self._commit_one(identity, change.task_id, dict(change.fields))
            except Exception as e:
                reason = str(e).strip() or e.__class__.__name__
                logger.warning("Task change commit failed task_id=%s: %s", change.task_id, reason)
                report.failed.append(ChangeFailure(task_id=change.task_id, reason=reason))
                continue

            if self._store.get_change_for(change.task_id) == change.fields:
                self._store.remove(change.task_id)
            else:
                logger.debug("Task %s edited during commit; keeping newer edit pending", change.task_id)
            report.saved.append(change.task_id)

        if report.ok:
            logger.info("All %d change(s) saved", len(report.saved))
        else:
            logger.warning(
                "Saved %d change(s), %d failed: %s",
                len(report.saved),
                len(report.failed),
                ", ".join(f.task_id for f in report.failed),
            )
        return report
