"""Logging setup for Chowkar backend."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(debug: bool = False) -> None:
    """Configure root logging once per process."""
    global _configured
    level = logging.DEBUG if debug else logging.INFO
    if _configured:
        logging.getLogger().setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a named logger, e.g. ``get_logger("chowkar.payments")``."""
    return logging.getLogger(name)
