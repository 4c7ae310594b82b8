"""Logging configuration for markmv.

Usage in other modules:
    import logging
    log = logging.getLogger(__name__)

The log level can be configured via the MARKMV_LOG_LEVEL environment variable:
    - DEBUG: Every planned change and disk mutation
    - INFO: Operation summaries (default)
    - WARNING: Unexpected but handled situations
    - ERROR: Failures that stopped an operation
"""

import logging
import os
import sys

_QUIET = False

# Levels in effect before quiet mode was switched on; None keys the logger itself
_saved_levels: dict[logging.Handler | None, int] = {}


def _configured_level() -> int:
    level_name = os.environ.get("MARKMV_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging() -> None:
    """Configure logging for the markmv package.

    Call this once at application startup (cli.py does).
    Subsequent calls are no-ops.
    """
    root_logger = logging.getLogger("markmv")

    if root_logger.handlers:
        return

    level = _configured_level()
    if _QUIET:
        level = max(level, logging.ERROR)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    # Use a clean format: [level] logger: message
    formatter = logging.Formatter(
        fmt="[%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Prevent propagation to root logger (avoids duplicate messages)
    root_logger.propagate = False


def set_quiet_mode(quiet: bool) -> None:
    """Suppress everything below ERROR for the markmv logger tree.

    Turning quiet mode off restores the levels that were in effect before.
    """
    global _QUIET
    if quiet == _QUIET:
        return
    _QUIET = quiet

    root_logger = logging.getLogger("markmv")
    if quiet:
        _saved_levels[None] = root_logger.level
        for handler in root_logger.handlers:
            _saved_levels[handler] = handler.level
            handler.setLevel(logging.ERROR)
        root_logger.setLevel(logging.ERROR)
        return

    level = _saved_levels.pop(None, logging.NOTSET)
    if level == logging.NOTSET and root_logger.handlers:
        # Handlers were added while quiet
        level = _configured_level()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(_saved_levels.pop(handler, _configured_level()))
    _saved_levels.clear()


def is_quiet() -> bool:
    return _QUIET
