"""
Logging setup.

Library modules log through loguru's shared ``logger`` and never install
sinks themselves; applications (and the ``lexgate`` CLI) call
``configure_logging`` once at start-up.
"""

from __future__ import annotations

import sys

from loguru import logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", sink=None) -> int:
    """Replace loguru's default handler with a single lexgate handler.

    Args:
        level: Minimum level to emit.
        sink: Destination; defaults to ``sys.stderr``.

    Returns:
        The loguru handler id.
    """
    logger.remove()
    return logger.add(sink or sys.stderr, level=level.upper(), format=_FORMAT)
