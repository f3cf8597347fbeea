"""
Lightweight logging utilities for the zkVote toolkit.

Every module logs through `get_logger(__name__)`. The level comes from the
ZKV_LOG_LEVEL environment variable and can be raised at runtime with
`set_log_level` (the CLI's --verbose flag).
"""

import logging
import os
from typing import Optional, Union

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_PACKAGE = "zkvote_toolkit"

_level_override: Optional[int] = None


def _resolve_level(level: Union[int, str, None]) -> int:
    if isinstance(level, int):
        return level
    level_str = (level or os.getenv("ZKV_LOG_LEVEL", "INFO")).upper()
    return getattr(logging, level_str, logging.INFO)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a configured logger with a stream handler.

    The first time a logger is created, a StreamHandler is attached with a
    plain-text formatter. Subsequent calls reuse the existing configuration.
    """
    logger = logging.getLogger(name if name else _PACKAGE)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(
            _level_override
            if _level_override is not None
            else _resolve_level(None)
        )

    return logger


def set_log_level(level: Union[int, str]) -> int:
    """Apply a level to every toolkit logger, including ones created later."""
    global _level_override
    _level_override = _resolve_level(level)

    for name, logger in logging.root.manager.loggerDict.items():
        if isinstance(logger, logging.Logger) and name.startswith(_PACKAGE):
            logger.setLevel(_level_override)
    return _level_override
