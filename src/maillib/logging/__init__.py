"""Logging helpers for maillib.

Library modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves. Applications (and the ``maillib`` CLI) call
:func:`init_logging` once to get Rich console output for the whole
``maillib`` namespace.

Examples:
    >>> from maillib.logging import init_logging
    >>> log = init_logging(config={"console": {"level": "TRACE"}})  # doctest: +SKIP
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from maillib.logging.manager import LOGGING_LEVEL, SUCCESS_LEVEL, TRACE_LEVEL, LogManager

_ROOT_NAME = "maillib"
_root_logger: LogManager | None = None


def _logger_trace(self: logging.Logger, msg: str, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, msg, args, **kwargs)


def _logger_success(self: logging.Logger, msg: str, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(SUCCESS_LEVEL):
        self._log(SUCCESS_LEVEL, msg, args, **kwargs)


def _patch_logger_class() -> None:
    """Expose ``.trace()`` and ``.success()`` on every standard logger."""
    if "trace" not in logging.Logger.__dict__:
        logging.Logger.trace = _logger_trace  # type: ignore[attr-defined]
    if "success" not in logging.Logger.__dict__:
        logging.Logger.success = _logger_success  # type: ignore[attr-defined]


def init_logging(
    *,
    config: Mapping[str, Any] | None = None,
    preset: str | None = None,
) -> LogManager:
    """Configure the ``maillib`` logger namespace.

    Handlers built by a :class:`LogManager` are installed on the standard
    ``maillib`` logger, so every ``logging.getLogger("maillib.<module>")``
    picks them up. The logger level follows the most verbose handler, so
    TRACE-only work (SMTP dialogue capture) stays off unless a handler
    wants it. Calling it again replaces the previous handlers.

    Args:
        config: Logging configuration mapping (``output``, ``console``, ``file``).
        preset: Preset name (``dev``, ``debug``, ``prod``).

    Returns:
        The configured root LogManager.
    """
    global _root_logger  # pylint: disable=global-statement

    manager = LogManager(_ROOT_NAME, config=config, preset=preset)
    std_logger = logging.getLogger(_ROOT_NAME)
    if _root_logger is not None:
        for handler in _root_logger.handlers:
            std_logger.removeHandler(handler)
    std_logger.setLevel(min((handler.level for handler in manager.handlers), default=logging.WARNING))
    for handler in manager.handlers:
        std_logger.addHandler(handler)

    _patch_logger_class()
    _root_logger = manager
    return manager


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the ``maillib`` namespace.

    ``get_logger(None)`` returns the LogManager from :func:`init_logging`
    when it was called, else the plain ``maillib`` logger.
    """
    if name is None:
        return _root_logger if _root_logger is not None else logging.getLogger(_ROOT_NAME)
    if name == _ROOT_NAME or name.startswith(f"{_ROOT_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_NAME}.{name}")


__all__ = [
    "LOGGING_LEVEL",
    "SUCCESS_LEVEL",
    "TRACE_LEVEL",
    "LogManager",
    "get_logger",
    "init_logging",
]
