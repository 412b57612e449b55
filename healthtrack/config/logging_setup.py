"""Root logger configuration shared by scripts and the application entry point."""

import logging

from .settings import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger.

    Args:
        level: Log level name; defaults to ``settings.log_level``
    """
    logging.basicConfig(level=level or settings.log_level, format=LOG_FORMAT, force=True)
    # redis-py logs every reconnect attempt at DEBUG; the backend already reports them
    logging.getLogger("redis").setLevel(logging.WARNING)
