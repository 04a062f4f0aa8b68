"""Logging configuration for the spec_workflow package."""

import logging
from typing import Union

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: Union[str, int] = logging.INFO, console: Console = None) -> logging.Logger:
    """Install a Rich handler on the package logger.

    Args:
        level: Log level for the ``spec_workflow`` logger.
        console: Console to render to; defaults to stderr.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger('spec_workflow')
    logger.setLevel(level)
    logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter('%(message)s', datefmt='[%X]'))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
