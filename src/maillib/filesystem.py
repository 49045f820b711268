"""File access used by the message builder.

Every read goes through a :class:`FileReader` so that failures surface as
:class:`~maillib.exceptions.MailIOError` and tests can substitute in-memory
content.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from maillib.exceptions import MailIOError

log = logging.getLogger(__name__)


@runtime_checkable
class FileReader(Protocol):
    """Protocol for reading body, attachment and image content."""

    def read_bytes(self, path: str | Path) -> bytes:
        """Return the whole file as bytes.

        Raises:
            MailIOError: If the file cannot be read.
        """
        ...

    def read_text(self, path: str | Path, encoding: str = "utf-8") -> str:
        """Return the whole file decoded with *encoding*.

        Raises:
            MailIOError: If the file cannot be read or decoded.
        """
        ...


class LocalFileReader:
    """Read files from the local filesystem.

    Args:
        base_dir: Directory that relative paths are resolved against.
            Defaults to the current working directory at read time.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else None

    def _resolve(self, path: str | Path) -> Path:
        candidate = Path(path).expanduser()
        if self._base_dir is not None and not candidate.is_absolute():
            candidate = self._base_dir / candidate
        return candidate

    def read_bytes(self, path: str | Path) -> bytes:
        target = self._resolve(path)
        try:
            data = target.read_bytes()
        except OSError as e:
            raise MailIOError(str(path), e.strerror or str(e)) from e
        log.debug("Read %d bytes from %s", len(data), target)
        return data

    def read_text(self, path: str | Path, encoding: str = "utf-8") -> str:
        data = self.read_bytes(path)
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as e:
            raise MailIOError(str(path), f"not valid {encoding} text ({e.reason})") from e
        except LookupError as e:
            raise MailIOError(str(path), f"unknown encoding {encoding!r}") from e


__all__ = ["FileReader", "LocalFileReader"]
