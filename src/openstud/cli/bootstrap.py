# src/openstud/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- builds the session identity from settings,
- wires concrete implementations into AppState (LLM/tasks/conversations/changes).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.identity import Identity
from ..core.persona import resolve_persona
from ..core.ports import LLMClient
from ..core.state import AppState
from ..llm.client import OpenAICompatibleLLMClient
from ..llm.offline import OfflineLLMClient
from ..tasks.task_changes import TaskChanges
from ..tasks.task_store import TaskStore
from ..tutor.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.conversations_db_path.parent.mkdir(parents=True, exist_ok=True)


def identity_from_settings(settings) -> Identity:
    return Identity(
        user_id=str(settings.user_id),
        name=(getattr(settings, "user_name", "") or None),
        email=(getattr(settings, "user_email", "") or None),
    )


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    llm_client: LLMClient
    try:
        llm_client = OpenAICompatibleLLMClient(settings)
    except RuntimeError as e:
        logger.info("AI tutor offline: %s", e)
        llm_client = OfflineLLMClient()

    try:
        persona = resolve_persona(getattr(settings, "default_persona", None))
    except ValueError:
        logger.warning("Unknown default persona %r; using base prompt", settings.default_persona)
        persona = None

    identity = identity_from_settings(settings)
    task_store = TaskStore(settings.tasks_db_path)
    task_store.ensure_user(identity)

    return AppState(
        settings=settings,
        identity=identity,
        llm=llm_client,
        task_store=task_store,
        conversations=ConversationStore(settings.conversations_db_path),
        changes=TaskChanges(task_store),
        persona=persona,
    )
