# src/openstud/core/chat.py

"""
AI tutor chat orchestration.

This module is transport-agnostic:
- callers provide the student's text and the explicit identity,
- the core resolves the conversation, builds the prompt and streams LLM output,
- callers decide how to display the stream.

Key invariants:
- the student's message is stored before the model is called,
- the assistant reply is stored only after a complete, non-empty stream
  (interrupted streams never leave partial replies in history),
- the system prompt is rebuilt per request and never stored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from .identity import Identity
from .persona import get_system_prompt
from .ports import ChatMessage
from .state import AppState

logger = logging.getLogger(__name__)


def ensure_conversation(
    state: AppState,
    identity: Identity,
    user_text: str,
    conversation_id: str | None = None,
) -> str:
    """Return a conversation id the identity owns, creating one titled after `user_text` if needed."""
    if conversation_id:
        return state.conversations.get_conversation(identity, conversation_id).id
    return state.conversations.create_conversation(identity, user_text).id


def _history_for_llm(state: AppState, conversation_id: str) -> list[ChatMessage]:
    limit = int(getattr(state.settings, "chat_history_limit", 40))
    return [
        {"role": m.role, "content": m.content}
        for m in state.conversations.list_messages(conversation_id, limit=limit)
    ]


def stream_reply(
    state: AppState,
    identity: Identity,
    user_text: str,
    *,
    conversation_id: str,
    persona: str | None = None,
) -> Iterator[str]:
    """
    Stream the tutor's reply to `user_text` inside an existing conversation.

    Yields assistant text chunks as they arrive from the LLM client.
    """
    user_text = (user_text or "").strip()
    if not user_text:
        raise ValueError("Message is empty")

    # Ownership check before anything is written.
    state.conversations.get_conversation(identity, conversation_id)

    history = _history_for_llm(state, conversation_id)
    state.conversations.add_message(conversation_id, "user", user_text)
    messages_for_llm: list[ChatMessage] = [*history, {"role": "user", "content": user_text}]

    system_prompt = get_system_prompt(persona if persona is not None else state.persona)

    assistant_full = ""
    completed = False
    try:
        for piece in state.llm.stream_chat(messages_for_llm, system_prompt):
            if not piece:
                continue
            assistant_full += piece
            yield piece
        completed = True
    finally:
        assistant_full = assistant_full.strip()
        if completed and assistant_full:
            state.conversations.add_message(conversation_id, "assistant", assistant_full)
            logger.debug(
                "Tutor reply stored conversation=%s chars=%d", conversation_id, len(assistant_full)
            )
        elif not completed:
            logger.info("Tutor stream interrupted conversation=%s; reply not stored", conversation_id)


def generate_reply_text(
    state: AppState,
    identity: Identity,
    user_text: str,
    *,
    conversation_id: str | None = None,
    persona: str | None = None,
) -> tuple[str, str]:
    """
    Non-streaming helper. Returns (reply_text, conversation_id).
    """
    conv_id = ensure_conversation(state, identity, user_text, conversation_id)
    out = ""
    for piece in stream_reply(state, identity, user_text, conversation_id=conv_id, persona=persona):
        out += piece
    return out.strip(), conv_id
