# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use:
- .env (local, gitignored)
- config_local.py (local safe overrides, gitignored)
"""

ENV_VARS = {
    # App / logging
    "OPENSTUD_APP_NAME": "App display name (default: openstud).",
    "OPENSTUD_LOG_LEVEL": "Console logging level (default: INFO).",
    # Session identity (the console acts as this user)
    "OPENSTUD_USER_ID": "User id for the local session (default: local-student).",
    "OPENSTUD_USER_NAME": "Display name (default: Student).",
    "OPENSTUD_USER_EMAIL": "Optional email stored with the user row.",
    # AI tutor (OpenAI-compatible API, xAI Grok by default)
    "OPENSTUD_LLM_API_KEY": "API key; falls back to GROK_API_KEY. Empty => offline tutor.",
    "OPENSTUD_LLM_BASE_URL": "Base URL (default: https://api.x.ai/v1; falls back to GROK_API_BASE_URL).",
    "OPENSTUD_LLM_MODELS": "Comma/space separated list of models to try in order.",
    "OPENSTUD_LLM_TEMPERATURE": "Sampling temperature (default: 0.7).",
    "OPENSTUD_LLM_MAX_TOKENS": "Max tokens per reply (default: 1024).",
    "OPENSTUD_PERSONA": "Default persona: tutor, study-buddy, writing-assistant, project-helper.",
    "OPENSTUD_CHAT_HISTORY_LIMIT": "Messages of history sent to the model (default: 40).",
    # LLM timeouts (seconds)
    "OPENSTUD_LLM_CONNECT_TIMEOUT_SECONDS": "HTTP connect timeout.",
    "OPENSTUD_LLM_READ_TIMEOUT_SECONDS": "HTTP read timeout.",
    "OPENSTUD_LLM_FIRST_TOKEN_TIMEOUT_SECONDS": "Give up on a model if no token arrives in time.",
    # Paths (gitignored)
    "OPENSTUD_DATA_DIR": "Local data directory (default: .local/openstud).",
    "OPENSTUD_TASKS_DB_PATH": "Workspaces/projects/tasks SQLite path (default: <data_dir>/openstud.sqlite3).",
    "OPENSTUD_CONVERSATIONS_DB_PATH": (
        "Tutor conversations SQLite path (default: <data_dir>/conversations.sqlite3)."
    ),
}
