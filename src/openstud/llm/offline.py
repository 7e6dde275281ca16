# src/openstud/llm/offline.py

from __future__ import annotations

from collections.abc import Iterable

from ..core.ports import ChatMessage


class OfflineLLMClient:
    """
    Offline deterministic LLM client used when no API key is configured.

    Echoes the last student message with a short note, so the console and
    conversation history keep working without network access.
    """

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        user_text = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_text = m["content"]
                break

        yield (
            "Offline mode: the AI tutor is not configured.\n"
            "Set OPENSTUD_LLM_API_KEY (and OPENSTUD_LLM_MODELS) to enable real answers.\n\n"
            f"You asked: {user_text}"
        )
