"""
Logging bootstrap for the application entry point.
"""
import logging

from stackprice.core.config import config


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> None:
    """
    Configure root logging once.

    Args:
        level: Log level name (defaults to config.LOG_LEVEL)
    """
    resolved = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
