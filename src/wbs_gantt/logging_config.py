"""Logging setup for the CLI and the terminal UI."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

LOGGER_NAME = "wbs_gantt"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(
    settings: dict[str, Any] | None = None,
    verbose: bool = False,
    project_dir: Path | None = None,
) -> logging.Logger:
    """Configure the package logger from the ``logging`` settings block.

    The TUI owns the terminal, so output goes to ``logging.file`` when set,
    to stderr only when ``verbose`` is requested, and nowhere otherwise.
    Calling it again replaces the handlers installed by the previous call.
    """
    section = (settings or {}).get("logging", {}) or {}
    level_name = str(section.get("level", "INFO")).upper()
    level = logging.DEBUG if verbose else getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)
    installed = False

    log_file = str(section.get("file", "") or "")
    if log_file:
        path = Path(log_file).expanduser()
        if not path.is_absolute() and project_dir is not None:
            path = project_dir / path
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        installed = True

    if verbose:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
        installed = True

    if not installed:
        logger.addHandler(logging.NullHandler())

    return logger
