# src/openstud/llm/client.py

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterable
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import OpenAI

from ..core.ports import ChatMessage

logger = logging.getLogger(__name__)

_BAD_MODELS: dict[str, float] = {}  # model -> retry_at (monotonic)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    s = raw.strip()
    if not s:
        return default
    try:
        return float(s)
    except ValueError:
        return default


def _timeouts_from_env() -> dict[str, float]:
    """
    Timeouts are configurable via env so a slow model cannot hang the console.

    Defaults:
    - connect timeout: 5s
    - read timeout: 30s (no data from server)
    - first token timeout: 25s (no content tokens)
    """
    first_token = _env_float("OPENSTUD_LLM_FIRST_TOKEN_TIMEOUT_SECONDS", 25.0)
    read_timeout = _env_float("OPENSTUD_LLM_READ_TIMEOUT_SECONDS", 30.0)
    connect_timeout = _env_float("OPENSTUD_LLM_CONNECT_TIMEOUT_SECONDS", 5.0)

    # keep read >= first_token
    read_timeout = max(read_timeout, first_token)

    return {
        "first_token": first_token,
        "read": read_timeout,
        "connect": connect_timeout,
    }


def _is_auth_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError))


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.APIConnectionError, httpx.TimeoutException, TimeoutError))


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "LLM API key is not set" in msg:
        return "AI tutor is not configured (missing API key). Set OPENSTUD_LLM_API_KEY in .env."
    if "LLM model list is empty" in msg:
        return "AI tutor is not configured (no models). Set OPENSTUD_LLM_MODELS in .env."
    if "LLM base URL is not set" in msg:
        return "AI tutor is not configured (missing base URL). Set OPENSTUD_LLM_BASE_URL in .env."
    return msg


def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if callable(close):
        try:
            close()
        except (httpx.HTTPError, openai.APIError):
            logger.debug("LLM: stream close failed", exc_info=True)


class OpenAICompatibleLLMClient:
    """
    Streaming chat client for any OpenAI-compatible endpoint (Grok by default).

    - No secrets required at import time; the key is checked on construction.
    - SDK retries are disabled so we can fall back across models quickly.
    """

    def __init__(self, settings: Any) -> None:
        api_key = getattr(settings, "llm_api_key", None)
        base_url = getattr(settings, "llm_base_url", "") or ""

        if not api_key or not str(api_key).strip():
            raise RuntimeError("LLM API key is not set. Set OPENSTUD_LLM_API_KEY in your .env.")
        if not base_url.strip():
            raise RuntimeError("LLM base URL is not set. Set OPENSTUD_LLM_BASE_URL in your .env.")

        self._models: List[str] = [m.strip() for m in (getattr(settings, "llm_models", []) or []) if m.strip()]
        self._temperature = float(getattr(settings, "llm_temperature", 0.7))
        self._max_tokens = int(getattr(settings, "llm_max_tokens", 1024))

        self._timeouts = _timeouts_from_env()
        self._timeout_obj = httpx.Timeout(
            connect=self._timeouts["connect"],
            read=self._timeouts["read"],
            write=10.0,
            pool=self._timeouts["connect"],
        )
        self._client = OpenAI(
            base_url=str(base_url),
            api_key=str(api_key),
            timeout=self._timeout_obj,
            max_retries=0,
        )

    def _create_stream(self, *, model: str, messages: list[ChatMessage]) -> Any:
        return self._client.chat.completions.create(
            model=model,
            stream=True,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            timeout=self._timeout_obj,
        )

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        """
        Stream the reply in text chunks.

        Behavior:
        - Tries models in configured order (OPENSTUD_LLM_MODELS).
        - No first content token within the first-token timeout -> next model.
        - 404 (model not available) -> next model, skipped for an hour.
        - Rate limit / network issues -> next model.
        - Auth issues -> fail fast.
        """
        if not self._models:
            raise RuntimeError("LLM model list is empty. Set OPENSTUD_LLM_MODELS in your .env.")

        first_token_timeout = float(self._timeouts["first_token"])
        last_error: Optional[Exception] = None
        now = time.monotonic()
        payload: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}, *messages]

        for model in self._models:
            retry_at = _BAD_MODELS.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying model=%s (first_token_timeout=%.1fs)", model, first_token_timeout)
            t0 = time.monotonic()
            deadline = t0 + first_token_timeout

            stream = None
            used_any = False

            try:
                stream = self._create_stream(model=model, messages=payload)

                for chunk in stream:
                    if not used_any and time.monotonic() > deadline:
                        last_error = TimeoutError(f"First token timeout on model: {model}")
                        logger.info("LLM: first token timeout on model=%s -> trying next", model)
                        break

                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    content = getattr(delta, "content", None) if delta is not None else None

                    if content:
                        if not used_any:
                            logger.info("LLM: first token from model=%s (%.2fs)", model, time.monotonic() - t0)
                        used_any = True
                        yield content

                if used_any:
                    logger.debug("LLM: completed with model=%s", model)
                    return

                if last_error is None:
                    last_error = RuntimeError(f"Model returned no content: {model}")

            except (openai.APIError, httpx.HTTPError, TimeoutError) as e:
                last_error = e

                if _is_auth_error(e):
                    raise RuntimeError(
                        "LLM authentication failed. Check your API key (OPENSTUD_LLM_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    _BAD_MODELS[model] = time.monotonic() + 3600.0
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            finally:
                if stream is not None:
                    _close_stream(stream)

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise RuntimeError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise RuntimeError("LLM network/timeout error. Try again later or change models.") from last_error
            raise RuntimeError("All LLM models failed.") from last_error

        raise RuntimeError("All LLM models failed.")
