# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Prefer `.env` for secrets. Only USER_ID, USER_NAME, DEFAULT_PERSONA and LOG_LEVEL are read.
"""

# Example: act as a different local student
# USER_ID = "alice"
# USER_NAME = "Alice"

# Example: start in study-buddy mode
# DEFAULT_PERSONA = "study-buddy"

# LOG_LEVEL = "DEBUG"
