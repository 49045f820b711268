"""Config-driven logger for maillib.

``LogManager`` is a :class:`logging.Logger` that builds its own handlers from
a small configuration mapping: a Rich console handler and an optional plain
file handler. Two extra levels are registered, ``TRACE`` (below DEBUG, used
for SMTP session details) and ``SUCCESS`` (between INFO and WARNING).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import SimpleNamespace
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

TRACE_LEVEL = 5
SUCCESS_LEVEL = 25

LOGGING_LEVEL = SimpleNamespace(
    TRACE=TRACE_LEVEL,
    DEBUG=logging.DEBUG,
    INFO=logging.INFO,
    SUCCESS=SUCCESS_LEVEL,
    WARNING=logging.WARNING,
    ERROR=logging.ERROR,
    CRITICAL=logging.CRITICAL,
)

logging.addLevelName(TRACE_LEVEL, "TRACE")
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

FALLBACK_PRESETS: dict[str, dict[str, Any]] = {
    "dev": {
        "output": "console",
        "console": {"level": "DEBUG", "show_path": True},
    },
    "debug": {
        "output": "console",
        "console": {"level": "TRACE", "show_path": True},
    },
    "prod": {
        "output": "console",
        "console": {"level": "WARNING", "show_path": False},
    },
}

_VALID_OUTPUTS = frozenset({"console", "file", "both"})
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def _resolve_level(value: Any, default: int) -> int:
    """Turn a level name or number into a numeric level."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value!r}")
    return level


def _merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge two config mappings, one level of nested sections deep."""
    merged: dict[str, Any] = {key: dict(value) if isinstance(value, Mapping) else value for key, value in base.items()}
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


class LogManager(logging.Logger):
    """Logger configured from a mapping, with ``trace`` and ``success`` helpers.

    Args:
        name: Logger name.
        config: Logging configuration (``output``, ``console``, ``file``).
        preset: Name of a preset from :data:`FALLBACK_PRESETS` applied first.

    Examples:
        >>> log = LogManager(config={"output": "console", "console": {"level": "INFO"}})
        >>> log.success("Message accepted")  # doctest: +SKIP
    """

    def __init__(
        self,
        name: str = "maillib",
        *,
        config: Mapping[str, Any] | None = None,
        preset: str | None = None,
    ) -> None:
        """Initialize LogManager and attach its handlers."""
        super().__init__(name, TRACE_LEVEL)
        base = FALLBACK_PRESETS.get(preset or "dev")
        if base is None:
            raise ValueError(f"Unknown logging preset: {preset!r}")
        self.config = _merge(base, config or {})

        output = self.config.get("output", "console")
        if output not in _VALID_OUTPUTS:
            raise ValueError(f"Invalid logging output: {output!r}")

        if output in ("console", "both"):
            self.addHandler(self._build_console_handler(self.config.get("console", {})))
        if output in ("file", "both"):
            self.addHandler(self._build_file_handler(self.config.get("file", {})))

    @staticmethod
    def _build_console_handler(section: Mapping[str, Any]) -> logging.Handler:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=bool(section.get("show_path", False)),
            rich_tracebacks=True,
            markup=False,
        )
        handler.setLevel(_resolve_level(section.get("level"), logging.INFO))
        return handler

    @staticmethod
    def _build_file_handler(section: Mapping[str, Any]) -> logging.Handler:
        path = section.get("path")
        if not path:
            raise ValueError("File logging requires 'file.path'")
        log_path = Path(path).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        handler.setLevel(_resolve_level(section.get("level"), logging.DEBUG))
        return handler

    def trace(self, msg: str, *args: Any, **context: Any) -> None:
        """Log at TRACE level, appending ``key=value`` context pairs."""
        if self.isEnabledFor(TRACE_LEVEL):
            self._log(TRACE_LEVEL, _with_context(msg, context), args)

    def success(self, msg: str, *args: Any, **context: Any) -> None:
        """Log at SUCCESS level, appending ``key=value`` context pairs."""
        if self.isEnabledFor(SUCCESS_LEVEL):
            self._log(SUCCESS_LEVEL, _with_context(msg, context), args)


def _with_context(msg: str, context: Mapping[str, Any]) -> str:
    if not context:
        return msg
    pairs = " ".join(f"{key}={value}" for key, value in context.items())
    return f"{msg} | {pairs}"


__all__ = [
    "FALLBACK_PRESETS",
    "LOGGING_LEVEL",
    "SUCCESS_LEVEL",
    "TRACE_LEVEL",
    "LogManager",
]
