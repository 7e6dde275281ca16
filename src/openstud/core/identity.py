# src/openstud/core/identity.py

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Identity:
    """
    The authenticated user a core operation runs on behalf of.

    Passed explicitly to every store/aggregation/chat call instead of being read
    from ambient session state. Who authenticated the user is the caller's concern.
    """

    user_id: str
    name: str | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        if not self.user_id or not self.user_id.strip():
            raise ValueError("user_id is required")
