# src/openstud/tasks/task_fields.py

from __future__ import annotations

"""
Validation of editable task fields.

Shared by the pending-changes buffer (reject bad edits before they are staged)
and by TaskStore (reject bad writes from any other caller).
"""

import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Final

from .task_models import InvalidTaskFieldError, TaskCategory, TaskPriority

EDITABLE_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "title",
        "description",
        "completed",
        "completion_percentage",
        "due_at",
        "priority",
        "category",
    }
)

TITLE_MIN_LEN: Final[int] = 3
TITLE_MAX_LEN: Final[int] = 100


def _clean_title(value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidTaskFieldError("Task title must be a string")
    title = value.strip()
    if len(title) < TITLE_MIN_LEN:
        raise InvalidTaskFieldError(f"Task title must be at least {TITLE_MIN_LEN} characters")
    if len(title) > TITLE_MAX_LEN:
        raise InvalidTaskFieldError(f"Task title must not exceed {TITLE_MAX_LEN} characters")
    return title


def _clean_percentage(value: Any) -> int:
    # bool is an int subclass; True must not sneak in as 1%.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTaskFieldError("completion_percentage must be an integer")
    if not 0 <= value <= 100:
        raise InvalidTaskFieldError("completion_percentage must be between 0 and 100")
    return value


def _clean_due_at(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidTaskFieldError("due_at must be a timestamp or None")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidTaskFieldError("due_at must be a finite timestamp")
    # Must stay renderable as a local date.
    try:
        ts = float(value)
        datetime.fromtimestamp(ts).astimezone()
    except (OverflowError, OSError, ValueError):
        raise InvalidTaskFieldError("due_at is out of range") from None
    return ts


def _clean_enum(enum_cls: type[TaskPriority] | type[TaskCategory], name: str, value: Any) -> Any:
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise InvalidTaskFieldError(f"{name} must be one of: {allowed}") from None


def validate_task_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a cleaned copy of a partial task edit.

    Raises InvalidTaskFieldError on unknown keys or bad values; the input is never mutated.
    """
    if not isinstance(fields, Mapping):
        raise InvalidTaskFieldError("fields must be a mapping")

    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise InvalidTaskFieldError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

    out: dict[str, Any] = {}
    for key, value in fields.items():
        if key == "title":
            out[key] = _clean_title(value)
        elif key == "description":
            if value is not None and not isinstance(value, str):
                raise InvalidTaskFieldError("description must be a string or None")
            out[key] = value
        elif key == "completed":
            if not isinstance(value, bool):
                raise InvalidTaskFieldError("completed must be a boolean")
            out[key] = value
        elif key == "completion_percentage":
            out[key] = _clean_percentage(value)
        elif key == "due_at":
            out[key] = _clean_due_at(value)
        elif key == "priority":
            out[key] = _clean_enum(TaskPriority, "priority", value)
        elif key == "category":
            out[key] = _clean_enum(TaskCategory, "category", value)
    return out


def reconcile_completion(
    edit: Mapping[str, Any],
    merged: dict[str, Any],
    *,
    current_percentage: int | None = None,
) -> dict[str, Any]:
    """
    Keep `completed` and `completion_percentage` consistent in `merged`.

    - The edit sets completion_percentage: completed := percentage == 100.
    - The edit only sets completed=True: percentage := 100.
    - The edit only sets completed=False while the effective percentage is 100:
      percentage := 0.

    `current_percentage` is the last known percentage outside `merged`
    (the stored value) or None when unknown.
    """
    if "completion_percentage" in edit:
        merged["completed"] = merged["completion_percentage"] == 100
        return merged

    if "completed" in edit:
        effective = merged.get("completion_percentage", current_percentage)
        if merged["completed"]:
            merged["completion_percentage"] = 100
        elif effective == 100:
            merged["completion_percentage"] = 0
    return merged
