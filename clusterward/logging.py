"""Logging configuration for the clusterward package."""
import logging

from .config import Config

NOISY_LOGGERS = ("urllib3", "kubernetes", "uvicorn.access")


def setup_logging(debug_mode: bool = False) -> None:
    """Configure root logging for the CLI and the operator process.

    Args:
        debug_mode: Log at DEBUG instead of the configured level
    """
    if debug_mode:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler()
        ],
    )
    logging.getLogger().setLevel(log_level)
    # Disable debug logging for noisy libraries
    if not debug_mode:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
