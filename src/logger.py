import logging
import os


def configure_logging(level_name=None):
    """Configure root logging using the LOG_LEVEL environment variable.

    An explicit ``level_name`` (e.g. from a ``--verbose`` flag) wins over the
    environment.
    """
    level_name = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger with the given name."""
    return logging.getLogger(name)
