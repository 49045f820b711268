"""Shared pytest fixtures for the maillib test suite."""

from __future__ import annotations

# Disable Rich colors and force wide terminal BEFORE any imports
# Rich checks these at import time
import os

os.environ["NO_COLOR"] = "1"
os.environ["TERM"] = "dumb"
os.environ["FORCE_COLOR"] = "0"
os.environ["COLUMNS"] = "200"  # Prevent text wrapping in CLI output

import logging
from collections.abc import Callable, Iterator, Sequence
from email.message import EmailMessage
from pathlib import Path
from typing import Any

import pytest

import maillib.config.loader as _cfg_loader
import maillib.logging as _maillib_logging
from maillib.transport import MailConnection, MailTransport

# pylint: disable=redefined-outer-name

# 1x1 transparent PNG
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
    b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


class FakeConnection(MailConnection):
    """In-memory connection that records calls and can fail on demand."""

    def __init__(self, transport: FakeTransport) -> None:
        self.transport = transport

    def _maybe_fail(self, stage: str) -> None:
        if self.transport.fail_at == stage:
            raise self.transport.error

    def supports_starttls(self) -> bool:
        return self.transport.starttls_supported

    def starttls(self, context: Any) -> None:
        self.transport.calls.append(("starttls",))
        self._maybe_fail("starttls")

    def login(self, username: str, password: str) -> None:
        self.transport.calls.append(("login", username, password))
        self._maybe_fail("login")

    def send(self, message: EmailMessage, sender: str | None, recipients: Sequence[str]) -> None:
        self.transport.calls.append(("send", sender, list(recipients)))
        self.transport.sent.append(message)
        self._maybe_fail("send")

    def close(self) -> None:
        self.transport.calls.append(("close",))
        self.transport.close_count += 1


class FakeTransport(MailTransport):
    """Transport double; ``fail_at`` names the call that raises ``error``."""

    def __init__(
        self,
        *,
        fail_at: str | None = None,
        error: Exception | None = None,
        starttls_supported: bool = True,
    ) -> None:
        self.fail_at = fail_at
        self.error = error or RuntimeError("boom")
        self.starttls_supported = starttls_supported
        self.calls: list[tuple[Any, ...]] = []
        self.sent: list[EmailMessage] = []
        self.close_count = 0
        self.connect_kwargs: dict[str, Any] = {}

    def connect(self, host: str, port: int, *, tls_context: Any = None, timeout: float | None = None) -> FakeConnection:
        self.calls.append(("connect", host, port, tls_context is not None))
        self.connect_kwargs = {"tls_context": tls_context, "timeout": timeout}
        if self.fail_at == "connect":
            raise self.error
        return FakeConnection(self)

    @property
    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Build a :class:`FakeTransport` with the given failure settings."""

    def _make(**kwargs: Any) -> FakeTransport:
        return FakeTransport(**kwargs)

    return _make


@pytest.fixture
def png_file(tmp_path: Path) -> Path:
    """A small PNG image on disk."""
    path = tmp_path / "logo.png"
    path.write_bytes(PNG_BYTES)
    return path


@pytest.fixture
def text_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a UTF-8 file under tmp_path and return its path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Keep user config files and env vars out of every test."""
    monkeypatch.delenv("MAILLIB_CONFIG", raising=False)
    monkeypatch.delenv("MAILLIB_PASSWORD", raising=False)
    monkeypatch.setattr(_cfg_loader, "USER_CONFIG_DIR", tmp_path / "no-user-config")
    _cfg_loader.clear_config()
    yield
    _cfg_loader.clear_config()


@pytest.fixture(autouse=True)
def _restore_maillib_logger() -> Iterator[None]:
    """Undo handler and level changes made by ``init_logging``."""
    logger = logging.getLogger("maillib")
    handlers = list(logger.handlers)
    level = logger.level
    root_manager = _maillib_logging._root_logger
    yield
    logger.handlers = handlers
    logger.setLevel(level)
    _maillib_logging._root_logger = root_manager
