"""Specialized exceptions raised by maillib.

Exception hierarchy::

    MailError (base for all maillib errors)
        MailIOError (unreadable body, attachment or image file)
        AddressParseError (malformed address or address list, also ValueError)
        ConfigurationError (invalid or missing settings, also ValueError)
        InvalidStateError (message reused or incomplete, also RuntimeError)
        MailTransportError (base for delivery-stage failures)
            MailConnectionError (DNS, refused, timeout)
            SecurityError (TLS negotiation or certificate failure)
            AuthenticationError (credentials rejected)
            SubmissionError (message rejected by the server)
"""

from __future__ import annotations

from typing import Any


class MailError(Exception):
    """Base exception for all maillib errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error context as key-value pairs.

    Examples:
        >>> raise MailError("Something went wrong", details={"host": "smtp.example.com"})
        Traceback (most recent call last):
        ...
        maillib.exceptions.MailError: Something went wrong
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize MailError.

        Args:
            message: Human-readable error message.
            details: Additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MailIOError(MailError):
    """A body, attachment or image file could not be read.

    Attributes:
        path: The path that failed.
        reason: Description of the underlying failure.
    """

    def __init__(self, path: str, reason: str) -> None:
        """Initialize MailIOError.

        Args:
            path: The path that failed.
            reason: Description of the underlying failure.
        """
        super().__init__(f"Cannot read '{path}': {reason}", details={"path": path, "reason": reason})
        self.path = path
        self.reason = reason


class AddressParseError(MailError, ValueError):
    """An address or comma-separated address list is malformed.

    Attributes:
        value: The offending input.
        reason: Why it was rejected.

    Examples:
        >>> raise AddressParseError("bad-email", "missing '@'")
        Traceback (most recent call last):
        ...
        maillib.exceptions.AddressParseError: Invalid address 'bad-email': missing '@'
    """

    def __init__(self, value: str, reason: str) -> None:
        """Initialize AddressParseError.

        Args:
            value: The offending input.
            reason: Why it was rejected.
        """
        super().__init__(f"Invalid address '{value}': {reason}", details={"value": value, "reason": reason})
        self.value = value
        self.reason = reason


class ConfigurationError(MailError, ValueError):
    """Transport or legacy configuration is invalid or missing."""


class InvalidStateError(MailError, RuntimeError):
    """The message cannot be sent in its current state.

    Raised when a message that was already finalized is sent again, or when
    it has no envelope recipients.
    """


class MailTransportError(MailError):
    """Base class for failures raised while talking to the mail server.

    Attributes:
        stage: Name of the delivery stage that failed.
    """

    stage = "transport"


class MailConnectionError(MailTransportError):
    """The connection to the mail server could not be established."""

    stage = "connect"


class SecurityError(MailTransportError):
    """TLS negotiation or certificate validation failed."""

    stage = "secure"


class AuthenticationError(MailTransportError):
    """The server rejected the supplied credentials."""

    stage = "authenticate"


class SubmissionError(MailTransportError):
    """The server refused the message.

    Attributes:
        smtp_code: SMTP reply code, when the server sent one.
        server_reason: Server reply text, when available.

    Examples:
        >>> raise SubmissionError("Recipient refused", smtp_code=550, server_reason="relay denied")
        Traceback (most recent call last):
        ...
        maillib.exceptions.SubmissionError: Recipient refused (550 relay denied)
    """

    stage = "submit"

    def __init__(
        self,
        message: str,
        *,
        smtp_code: int | None = None,
        server_reason: str | None = None,
    ) -> None:
        """Initialize SubmissionError.

        Args:
            message: Human-readable error message.
            smtp_code: SMTP reply code, when the server sent one.
            server_reason: Server reply text, when available.
        """
        if smtp_code is not None or server_reason:
            reply = " ".join(part for part in (str(smtp_code) if smtp_code else "", server_reason or "") if part)
            message = f"{message} ({reply})"
        super().__init__(message, details={"smtp_code": smtp_code, "server_reason": server_reason})
        self.smtp_code = smtp_code
        self.server_reason = server_reason


__all__ = [
    "AddressParseError",
    "AuthenticationError",
    "ConfigurationError",
    "InvalidStateError",
    "MailConnectionError",
    "MailError",
    "MailIOError",
    "MailTransportError",
    "SecurityError",
    "SubmissionError",
]
