"""
Logging setup.

Configures the loguru logger: stderr at LOG_LEVEL plus a rotating file sink.
"""

import os
import sys

from loguru import logger

from config.settings import LOG_LEVEL


def setup_logging(logs_dir: str = "logs") -> None:
    """Configure logger with file rotation."""
    os.makedirs(logs_dir, exist_ok=True)

    logger.remove()
    logger.add(sys.stderr, level=LOG_LEVEL)
    logger.add(
        os.path.join(logs_dir, "app.log"),
        rotation="1 day",
        retention="7 days",
        level="INFO",
        encoding="utf-8",
    )
