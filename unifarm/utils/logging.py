"""
Logging configuration.

Configures loguru sinks with file rotation.
"""

import sys

from loguru import logger

from unifarm.config.settings import settings


def setup_logging(component: str = "unifarm") -> None:
    """
    Configure logger with file rotation.

    Args:
        component: Name written to the startup line (worker, scheduler)
    """
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.add(
        settings.log_file,
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        encoding="utf-8",
    )

    logger.info(f"Starting UniFarm {component}...")
