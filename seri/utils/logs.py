"""
Console logging for the seri CLI.

Library modules only call logging.getLogger(__name__); handlers are installed
here, once, by the entry point.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_HANDLER_NAME = "seri-rich"


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> logging.Logger:
    """Install a RichHandler on the "seri" logger (idempotent)."""
    logger = logging.getLogger("seri")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for h in list(logger.handlers):
        if h.get_name() == _HANDLER_NAME:
            logger.removeHandler(h)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
