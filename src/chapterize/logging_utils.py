from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from uvicorn.config import LOGGING_CONFIG

PACKAGE_LOGGER = "chapterize"
_HANDLER_NAME = "chapterize-rich"


def set_debug_logging(enabled: bool, console: Console | None = None) -> logging.Logger:
    """Route package logs through rich; ``enabled`` switches INFO to DEBUG."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    handler = next((h for h in logger.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if enabled else logging.WARNING)
    logger.propagate = False
    return logger


def build_uvicorn_log_config(debug: bool = False) -> dict[str, Any]:
    """Return uvicorn's logging config with the package logger attached to it."""
    config = deepcopy(LOGGING_CONFIG)
    config.setdefault("loggers", {})[PACKAGE_LOGGER] = {
        "handlers": ["default"],
        "level": "DEBUG" if debug else "INFO",
        "propagate": False,
    }
    return config


__all__ = ["PACKAGE_LOGGER", "build_uvicorn_log_config", "set_debug_logging"]
