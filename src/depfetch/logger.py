"""Functions for logging."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# Libraries whose debug output drowns depfetch's own.
NOISY_LOGGERS = ("urllib3",)


def setup_logger(level: str) -> None:
    """Send every depfetch log record to stderr at `level` (a name such as ``debug``)."""
    level_value = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    # Remove all handlers associated with the root logger (avoid duplicate logs)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level_value, logging.INFO))
