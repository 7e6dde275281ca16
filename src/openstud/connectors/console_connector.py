# src/openstud/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.chat import ensure_conversation, stream_reply
from ..core.state import AppState
from ..llm.client import friendly_llm_error_message
from ..tasks.task_models import AccessDeniedError, NotFoundError

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _chat_turn(state: AppState, user_input: str, app_name: str) -> None:
    """One tutor exchange: resolve the conversation, stream the reply to stdout."""
    conv_id = ensure_conversation(state, state.identity, user_input, state.conversation_id)
    state.conversation_id = conv_id

    assistant_printed = False
    try:
        for piece in stream_reply(state, state.identity, user_input, conversation_id=conv_id):
            if not piece:
                continue
            if not assistant_printed:
                print(f"[{_ts_local()}] <<< {app_name}: ", end="", flush=True)
                assistant_printed = True
            print(piece, end="", flush=True)
    finally:
        # Close the partial reply line so error output starts on its own line.
        if assistant_printed:
            print("\n")

    if not assistant_printed:
        _print_ts("[LLM] No output (model produced no content).")


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (user=%s).", state.identity.user_id)
    _print_ts("[CONSOLE] Ask the tutor anything. Use /help for commands. Use /exit to quit.\n")

    app_name = str(getattr(state.settings, "app_name", "openstud"))

    def emit(text: str) -> None:
        # Immediate feedback for long operations (e.g. saving many changes)
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(">>> You: ").strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> You: {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            cmd_response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is not None:
            _print_ts(cmd_response)
            continue

        try:
            _chat_turn(state, user_input, app_name)
        except (NotFoundError, AccessDeniedError) as e:
            # Stale /chat selection; fall back to a new conversation next time.
            logger.info("Conversation unavailable: %s", e)
            state.conversation_id = None
            _print_ts(f"{e}. Starting a new conversation with your next message.")
        except RuntimeError as e:
            msg = friendly_llm_error_message(e)
            logger.info("LLM runtime error: %s", msg)
            _print_ts(f"[LLM] {msg}")
        except Exception:
            logger.exception("Console chat handler crashed.")
            _print_ts("Internal error while generating a reply.")

    logger.info("Console connector finished.")
