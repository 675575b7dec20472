"""Logging setup for the pageindex CLI and service.

Console lines carry the component that emitted them, e.g.
``[pageindex:store] INFO Replacing previously indexed page ...``.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "pageindex"
CONSOLE_FORMAT = "[pageindex:%(component)s] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(component)s %(threadName)s: %(message)s"


class ComponentFilter(logging.Filter):
    """Attach ``record.component``: the logger name below ``pageindex``."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == _LOGGER_NAME:
            record.component = "main"
        elif name.startswith(_LOGGER_NAME + "."):
            record.component = name[len(_LOGGER_NAME) + 1 :]
        else:
            record.component = name
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the pageindex hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send pageindex records to stderr, and to ``log_file`` when given.

    Calling this again replaces the handlers installed by the previous call.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    components = ComponentFilter()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.addFilter(components)
    stream_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(components)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["ComponentFilter", "configure_logging", "get_logger"]
