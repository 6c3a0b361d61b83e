"""Logging setup for the notewell CLI.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
installed once, at CLI startup, by :func:`setup_logging`.

Usage:
    from notewell.logging_config import setup_logging
    setup_logging(verbose=True)
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_ROOT_LOGGER = "notewell"

# Third-party loggers that are too chatty at INFO/DEBUG.
_QUIET_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "watchdog")


def setup_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """Install a RichHandler on the ``notewell`` logger and return it.

    Idempotent: calling twice replaces the handler instead of stacking a
    second one.

    Args:
        verbose: DEBUG when True, WARNING otherwise.
        console: Console to render to (defaults to stderr).
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger(_ROOT_LOGGER)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
