"""Console logging setup for the orchestrator."""
from __future__ import annotations

import logging
from typing import Optional

from . import settings

LOG_FORMAT = "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"

# Prevent duplicate handlers
_configured_loggers: set[str] = set()


def setup_logger(name: str = "agent_orchestrator", level: Optional[str] = None) -> logging.Logger:
    """Setup a logger with a console handler.

    Args:
        name: Logger name (e.g., 'agent_orchestrator', 'agent_orchestrator.workflow')
        level: Level name; defaults to settings.LOG_LEVEL

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or settings.LOG_LEVEL).upper())
    if name in _configured_loggers:
        return logger

    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(sh)

    _configured_loggers.add(name)
    return logger
