"""Logging configuration for nook."""

import sys
from pathlib import Path

from loguru import logger


def configure_logging(*, verbose: bool = False, log_file: Path | None = None) -> None:
    """Send nook's log output to stderr, and optionally to a rotating file.

    The MCP server speaks JSON-RPC on stdout, so nothing may log there.
    """
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")
    if log_file is not None:
        logger.add(log_file, level="DEBUG", rotation="1 MB", retention=3)
