# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from openstud.core.identity import Identity
from openstud.core.state import AppState
from openstud.tasks.task_changes import TaskChanges
from openstud.tasks.task_store import TaskStore
from openstud.tutor.conversation_store import ConversationStore

from .fakes import FakeLLMClient


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="openstud-test",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        conversations_db_path=tmp_path / "conversations.sqlite3",
        # Session
        user_id="alice",
        user_name="Alice",
        user_email="",
        # Tutor
        llm_api_key=None,
        llm_base_url="https://api.x.ai/v1",
        llm_models=["fake-model"],
        default_persona="tutor",
        chat_history_limit=40,
    )


@pytest.fixture()
def alice() -> Identity:
    return Identity(user_id="alice", name="Alice")


@pytest.fixture()
def bob() -> Identity:
    return Identity(user_id="bob", name="Bob")


@pytest.fixture()
def task_store(settings: SimpleNamespace, alice: Identity, bob: Identity) -> TaskStore:
    store = TaskStore(settings.tasks_db_path)
    store.ensure_user(alice)
    store.ensure_user(bob)
    return store


@pytest.fixture()
def state(settings: SimpleNamespace, alice: Identity, task_store: TaskStore) -> AppState:
    """
    AppState wired with a deterministic LLM fake.

    NOTE: We keep real SQLite stores here (TaskStore/ConversationStore) because
    their correctness is part of what we want to test.
    """
    return AppState(
        settings=settings,
        identity=alice,
        llm=FakeLLMClient(),
        task_store=task_store,
        conversations=ConversationStore(settings.conversations_db_path),
        changes=TaskChanges(task_store),
    )
