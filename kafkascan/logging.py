"""Logging setup shared by the CLI, the service and the scan pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Optional

ROOT_LOGGER = "kafkascan"
CONSOLE_FORMAT = "[kafkascan] %(levelname)s %(message)s"
# Includes the worker thread name.
FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"
DEFAULT_LOG_NAME = "kafkascan.log"


def get_logger(component: str | None = None) -> logging.Logger:
    """Logger for ``component`` under the ``kafkascan`` hierarchy."""
    if not component:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{component}")


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Install console (and optionally file) handlers on the kafkascan logger.

    Calling this again replaces the previous handlers, so repeated CLI
    invocations in one process do not duplicate output. ``log_file`` may be
    a directory, in which case ``kafkascan.log`` is created inside it.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = get_logger()
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        target = Path(log_file)
        if target.is_dir():
            target = target / DEFAULT_LOG_NAME
        target.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(target, encoding="utf-8")
        sink.setLevel(level)
        sink.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(sink)

    return logger


__all__ = ["configure_logging", "get_logger"]
