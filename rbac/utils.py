"""
Shared helpers.
"""
import logging
import sys

from rbac.core import config


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger("rbac")
    root.addHandler(handler)
    root.setLevel(config.LOG_LEVEL)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger.

    Usage:
        log = get_logger(__name__)
        log.info("Initializing server")
    """
    _configure_root()
    return logging.getLogger(name)


def require(value, name: str) -> None:
    """Raise TypeError when a required argument is None."""
    if value is None:
        raise TypeError(f"{name} is required")
