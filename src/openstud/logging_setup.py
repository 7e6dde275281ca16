# src/openstud/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "openstud.log"

# Console thresholds per logger prefix; the longest matching prefix wins.
# Store and tutor chatter (schema ready, row created) goes to the file only,
# while commit outcomes of pending task changes stay visible at INFO.
CONSOLE_THRESHOLDS: dict[str, int] = {
    "openstud": logging.INFO,
    "openstud.llm": logging.WARNING,
    "openstud.tasks.task_store": logging.WARNING,
    "openstud.tutor": logging.WARNING,
    "openstud.tasks.task_changes": logging.INFO,
    "py.warnings": logging.ERROR,
}
THIRD_PARTY_THRESHOLD = logging.ERROR


def _threshold_for(name: str) -> int:
    best = ""
    for prefix in CONSOLE_THRESHOLDS:
        if (name == prefix or name.startswith(prefix + ".")) and len(prefix) > len(best):
            best = prefix
    return CONSOLE_THRESHOLDS[best] if best else THIRD_PARTY_THRESHOLD


class _ConsoleNoiseFilter(logging.Filter):
    """Keep the REPL readable: per-prefix thresholds, third-party noise only at ERROR+."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= _threshold_for(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/openstud",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Configure logging once, before the first log call.

    Console: short lines on stderr (the REPL already timestamps its own output).
    File: everything at `file_level`, rotated at 1 MB, three backups kept.
    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return log_file
