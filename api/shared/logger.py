"""
Logging setup for the codraw backend.

    from api.shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Draw turn %d: %d elements", turn, count)

The Anthropic SDK logs every HTTP request through httpx; those loggers are
held at WARNING unless the backend itself runs at DEBUG.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_CLIENT_LOGGERS = ("anthropic", "httpx", "httpcore")

_configured = False


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging once; later calls are ignored.

    ``level`` defaults to the configured ``CODRAW_LOG_LEVEL``.
    """
    global _configured
    if _configured:
        return

    if level is None:
        from ..app_config import get_app_config
        level = get_app_config().log_level
    numeric = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    if numeric > logging.DEBUG:
        for name in _CLIENT_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
