"""
Logging setup.

Configures loguru sinks with file rotation and retention.
"""

import sys

from loguru import logger

from paylink.config.settings import Settings


def setup_logging(settings: Settings) -> None:
    """Configure stderr and rotating file sinks."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.add(
        settings.log_file,
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        encoding="utf-8",
    )

    logger.info(f"Starting PayLink ({settings.environment})...")
