"""Transport contract used by the dispatcher.

A :class:`MailTransport` opens connections; a :class:`MailConnection` is one
open session with a mail server. Implementations translate their own errors
into :mod:`maillib.exceptions` classes. The dispatcher wraps anything else in
the error class of the stage that raised it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import ssl
    from collections.abc import Sequence
    from email.message import EmailMessage


class MailConnection(ABC):
    """An open session with a mail server."""

    @abstractmethod
    def supports_starttls(self) -> bool:
        """Return True if the server advertises STARTTLS."""

    @abstractmethod
    def starttls(self, context: ssl.SSLContext) -> None:
        """Upgrade the session to TLS.

        Raises:
            SecurityError: If the upgrade or handshake fails.
        """

    @abstractmethod
    def login(self, username: str, password: str) -> None:
        """Authenticate the session.

        Raises:
            AuthenticationError: If the credentials are rejected.
        """

    @abstractmethod
    def send(self, message: EmailMessage, sender: str | None, recipients: Sequence[str]) -> None:
        """Submit *message* for *recipients*.

        Raises:
            SubmissionError: If the server refuses the message.
        """

    @abstractmethod
    def close(self) -> None:
        """Close the session. Must be safe to call after a failure."""


class MailTransport(ABC):
    """Factory for :class:`MailConnection` objects."""

    @abstractmethod
    def connect(
        self,
        host: str,
        port: int,
        *,
        tls_context: ssl.SSLContext | None = None,
        timeout: float | None = None,
    ) -> MailConnection:
        """Open a connection to ``host:port``.

        Args:
            host: Server host name or IP address.
            port: Server port.
            tls_context: When given, negotiate TLS immediately (implicit TLS).
            timeout: Socket timeout in seconds.

        Raises:
            MailConnectionError: If the server cannot be reached.
            SecurityError: If the implicit TLS handshake fails.
        """


__all__ = ["MailConnection", "MailTransport"]
