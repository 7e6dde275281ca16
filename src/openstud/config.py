# src/openstud/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Settings are injectable: core modules read them from AppState, not from here.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "OPENSTUD"

logger = logging.getLogger(__name__)

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local session identity ----
    user_id: str
    user_name: str
    user_email: str

    # ---- LLM (OpenAI-compatible, Grok by default) ----
    llm_api_key: Optional[str]
    llm_base_url: str
    llm_models: List[str]
    llm_temperature: float
    llm_max_tokens: int
    default_persona: str
    chat_history_limit: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    conversations_db_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "openstud") or "openstud"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        user_id = (_env(_k("USER_ID"), "local-student") or "local-student").strip()
        user_name = _env(_k("USER_NAME"), "Student").strip()
        user_email = _env(_k("USER_EMAIL"), "").strip()

        llm_api_key = _first_env(_k("LLM_API_KEY"), "GROK_API_KEY", default=None)
        llm_base_url = (
            _first_env(_k("LLM_BASE_URL"), "GROK_API_BASE_URL", default="https://api.x.ai/v1")
            or "https://api.x.ai/v1"
        )
        llm_models = _env_list(
            _k("LLM_MODELS"),
            _env_list("GROK_AI_CHAT_MODEL", ["grok-2-vision-latest"]),
        )
        llm_temperature = _env_float(_k("LLM_TEMPERATURE"), 0.7)
        llm_max_tokens = _env_int(_k("LLM_MAX_TOKENS"), 1024)
        default_persona = _env(_k("PERSONA"), "tutor").strip().lower()
        chat_history_limit = _env_int(_k("CHAT_HISTORY_LIMIT"), 40)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/openstud"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "openstud.sqlite3")
        conversations_db_path = _env_path(
            _k("CONVERSATIONS_DB_PATH"), data_dir / "conversations.sqlite3"
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            user_id=user_id,
            user_name=user_name,
            user_email=user_email,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_models=llm_models,
            llm_temperature=llm_temperature,
            llm_max_tokens=llm_max_tokens,
            default_persona=default_persona,
            chat_history_limit=chat_history_limit,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            conversations_db_path=conversations_db_path,
        )


def _apply_local_overrides(settings: Settings) -> Settings:
    """Apply safe overrides from an optional, gitignored config_local.py."""
    try:
        import config_local as _config_local  # type: ignore
    except ModuleNotFoundError:
        return settings

    overrides = {}
    for name in ("USER_ID", "USER_NAME", "DEFAULT_PERSONA", "LOG_LEVEL"):
        if hasattr(_config_local, name):
            overrides[name.lower()] = str(getattr(_config_local, name))
    if overrides:
        logger.debug("config_local overrides: %s", sorted(overrides))
        settings = replace(settings, **overrides)
    return settings


SETTINGS = _apply_local_overrides(Settings.from_env())


def get_settings() -> Settings:
    return SETTINGS
