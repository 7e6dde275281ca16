# src/openstud/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the console REPL.
Unsaved task changes live only in memory: leaving with changes pending drops them.
"""

from __future__ import annotations

import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..tasks.task_changes import save_button_label

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    # TaskStore/ConversationStore use short-lived sqlite connections per call; nothing to close.
    pending = len(state.changes)
    if pending:
        logger.warning(
            "Exiting with %d unsaved task change(s); they were discarded (%s was not run).",
            pending,
            save_button_label(pending),
        )
        state.changes.discard_all_changes()


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/openstud")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "openstud"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        run_console_loop(state)
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
