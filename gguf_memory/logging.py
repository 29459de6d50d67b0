# gguf_memory/logging.py
"""
Logging setup using Loguru, friendly for the threaded shard lookups.

- Debug toggle (range requests, window growth, stage timings)
- Human-readable console formatting on stderr so stdout stays clean for reports
"""
from __future__ import annotations

import sys

from loguru import logger


def configure_logging(*, debug: bool = False, quiet: bool = False) -> None:
    """Configure loguru logging sinks.

    Args:
        debug: Enable verbose debug logging.
        quiet: Only show errors (used when JSON goes to stdout).
    """
    logger.remove()
    level = "DEBUG" if debug else ("ERROR" if quiet else "WARNING")
    fmt = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> "
        "| <level>{level: <8}</level> "
        "| tid={thread.name} "
        "<cyan>{module}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> "
        "- <level>{message}</level>"
    )
    logger.add(sys.stderr, level=level, format=fmt, enqueue=True, backtrace=debug, diagnose=debug)
