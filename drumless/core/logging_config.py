"""
Configures the application's logging setup.

A single stream handler on the root logger; every module logs through
logging.getLogger(__name__).
"""

import logging

LOG_FORMAT = "%(asctime)s - %(levelname)-8s - %(name)-25s - %(message)s"


def setup_logging(level_str: str = "INFO") -> None:
    """
    Configures the root logger with one stream handler.

    Safe to call more than once: existing handlers are replaced rather than
    duplicated (uvicorn reloads and the test client both import the app).

    Args:
        level_str: The minimum logging level name (e.g., 'INFO').
    """
    level = getattr(logging, level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)

    logging.getLogger(__name__).debug("Logging initialized at %s", logging.getLevelName(level))
