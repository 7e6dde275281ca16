# src/openstud/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..tasks.task_changes import TaskChanges
from ..tasks.task_store import TaskStore
from .identity import Identity
from .ports import ConversationRepo, LLMClient


@dataclass
class AppState:
    """
    Everything one session needs, passed explicitly to commands and core functions.

    `changes` is the session's pending-changes controller; it lives exactly as long
    as this object and is never persisted.
    """

    settings: Any
    identity: Identity

    llm: LLMClient
    task_store: TaskStore
    conversations: ConversationRepo
    changes: TaskChanges

    persona: str | None = None
    conversation_id: str | None = None
