# src/openstud/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage/LLM providers swappable and makes testing easier.
"""

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..tasks.task_models import Project, Task, WorkspaceRole
    from ..tutor.conversation_store import Conversation, StoredMessage
    from .identity import Identity

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI-compatible)."""
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]: ...


class TaskUpdater(Protocol):
    """
    The one persistence contract the pending-changes controller needs.

    Returns the updated task, or raises (auth, validation, transient failures).
    May be sync or async.
    """

    def update_task(self, identity: Identity, task_id: str, fields: Mapping[str, Any]) -> Any: ...


class TaskRepo(TaskUpdater, Protocol):
    """Read side used by workspace aggregation."""

    def get_member_role(self, workspace_id: str, user_id: str) -> WorkspaceRole | None: ...
    def get_project(self, identity: Identity, project_id: str) -> Project: ...
    def list_projects(self, identity: Identity, workspace_id: str = ...) -> list[Project]: ...
    def list_accessible_projects(self, identity: Identity) -> list[Project]: ...
    def list_tasks_for_projects(
            self,
            project_ids: Iterable[str],
            *,
            due_only: bool = False,
    ) -> list[Task]: ...


class ConversationRepo(Protocol):
    def create_conversation(self, identity: Identity, first_message: str | None = None) -> Conversation: ...
    def get_conversation(self, identity: Identity, conversation_id: str) -> Conversation: ...
    def add_message(self, conversation_id: str, role: str, content: str) -> int | None: ...
    def list_messages(self, conversation_id: str, limit: int | None = None) -> list[StoredMessage]: ...
    def list_conversations(self, identity: Identity, limit: int = 50) -> list[Conversation]: ...
    def delete_conversation(self, identity: Identity, conversation_id: str) -> None: ...
