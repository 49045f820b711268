"""Delivery state machine.

A :class:`Dispatcher` takes one :class:`~maillib.builder.MessageBuilder` and a
:class:`TransportConfig` through connect, secure, authenticate and submit,
then always closes the connection::

    IDLE -> CONNECTED -> [SECURED] -> [AUTHENTICATED] -> SENT
                 \\____________\\_______________\\________-> FAILED

Problems detectable without the network (message already sent, no
recipients, empty host, partial credentials in strict mode, unusable TLS
settings) raise immediately. Anything that fails once the network is
involved is returned as a failed :class:`SendResult`; nothing is retried.

Examples:
    >>> config = TransportConfig("smtp.example.com", security="starttls")
    >>> config.effective_port
    25
    >>> config.resolved_security
    <SecurityMode.STARTTLS: 'starttls'>
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from maillib.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidStateError,
    MailConnectionError,
    MailError,
    MailTransportError,
    SecurityError,
    SubmissionError,
)
from maillib.ssl import DEFAULT_PROTOCOLS, TLSProtocol, build_ssl_context, parse_protocols

if TYPE_CHECKING:
    import ssl

    from maillib.builder import MessageBuilder
    from maillib.transport import MailConnection, MailTransport

log = logging.getLogger(__name__)

SMTP_PORT = 25
IMPLICIT_TLS_PORT = 465
DEFAULT_TIMEOUT = 30.0


class SecurityMode(str, Enum):
    """How the connection is protected."""

    NONE = "none"
    AUTO = "auto"
    IMPLICIT_TLS = "implicit-tls"
    STARTTLS = "starttls"
    STARTTLS_IF_AVAILABLE = "starttls-if-available"

    @classmethod
    def parse(cls, value: SecurityMode | str) -> SecurityMode:
        """Convert a mode name into a member.

        Matching ignores case and accepts ``_`` for ``-`` plus the short
        names ``ssl``, ``tls`` and ``tls-if-available``.

        Raises:
            ConfigurationError: If *value* is not a known mode.

        Examples:
            >>> SecurityMode.parse("SSL")
            <SecurityMode.IMPLICIT_TLS: 'implicit-tls'>
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "-")
        key = _SECURITY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            choices = ", ".join(member.value for member in cls)
            raise ConfigurationError(
                f"Unknown security mode {value!r} (expected one of: {choices})",
                details={"value": value},
            ) from None


_SECURITY_ALIASES = {
    "ssl": "implicit-tls",
    "tls": "starttls",
    "tls-if-available": "starttls-if-available",
}


class DispatchState(str, Enum):
    """Progress of one delivery attempt."""

    IDLE = "idle"
    CONNECTED = "connected"
    SECURED = "secured"
    AUTHENTICATED = "authenticated"
    SENT = "sent"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DispatchState.SENT, DispatchState.FAILED)


@dataclass(frozen=True, slots=True)
class TransportConfig:
    """Immutable connection settings for one delivery.

    Attributes:
        host: Server host name or IP address.
        port: Server port; None picks 465 for implicit TLS and 25 otherwise.
        security: Connection protection mode.
        username: Login name; authentication needs both it and *password*.
        password: Login secret (hidden from ``repr``).
        protocols: Allowed TLS versions.
        verify_certificates: Verify the server certificate and host name.
        ca_bundle: PEM file used instead of the system trust store.
        trace_path: File receiving the SMTP dialogue, or None.
        timeout: Socket timeout in seconds.
        strict_credentials: Reject a username without password (or the
            reverse) instead of sending anonymously.

    Examples:
        >>> config = TransportConfig("mx.example.com", port=465)
        >>> config.resolved_security
        <SecurityMode.IMPLICIT_TLS: 'implicit-tls'>
    """

    host: str
    port: int | None = None
    security: SecurityMode = SecurityMode.AUTO
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    protocols: TLSProtocol = DEFAULT_PROTOCOLS
    verify_certificates: bool = True
    ca_bundle: str | None = None
    trace_path: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    strict_credentials: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "security", SecurityMode.parse(self.security))
        if self.port is not None:
            if isinstance(self.port, bool):
                raise ConfigurationError(f"Port must be between 1 and 65535, got {self.port!r}")
            port = _optional_int(self.port, "port")
            if port is None or not 0 < port < 65536:
                raise ConfigurationError(f"Port must be between 1 and 65535, got {self.port!r}")
            object.__setattr__(self, "port", port)
        timeout = None if isinstance(self.timeout, bool) else _optional_float(self.timeout, "timeout")
        if timeout is None or timeout <= 0:
            raise ConfigurationError(f"Timeout must be a positive number of seconds, got {self.timeout!r}")
        object.__setattr__(self, "timeout", timeout)
        if not isinstance(self.verify_certificates, bool):
            raise ConfigurationError(
                f"verify_certificates must be bool, got {type(self.verify_certificates).__name__}"
            )

    @property
    def effective_port(self) -> int:
        """Return the configured port or the default for the security mode."""
        if self.port is not None:
            return int(self.port)
        if self.security is SecurityMode.IMPLICIT_TLS:
            return IMPLICIT_TLS_PORT
        return SMTP_PORT

    @property
    def resolved_security(self) -> SecurityMode:
        """Return the mode actually used, resolving ``auto`` by port."""
        if self.security is not SecurityMode.AUTO:
            return self.security
        if self.effective_port == IMPLICIT_TLS_PORT:
            return SecurityMode.IMPLICIT_TLS
        return SecurityMode.STARTTLS_IF_AVAILABLE

    @property
    def has_credentials(self) -> bool:
        """True when both username and password are set."""
        return bool(self.username) and bool(self.password)

    @property
    def has_partial_credentials(self) -> bool:
        return bool(self.username) != bool(self.password)

    def with_protocols(self, *protocols: TLSProtocol | str) -> TransportConfig:
        """Return a copy that additionally allows *protocols*.

        Examples:
            >>> config = TransportConfig("mx.example.com").with_protocols("TLSv1.1")
            >>> TLSProtocol.TLSv1_1 in config.protocols
            True
        """
        try:
            extra = parse_protocols(protocols)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        return dataclasses.replace(self, protocols=self.protocols | extra)

    def ssl_context(self) -> ssl.SSLContext:
        """Build the TLS context for this configuration.

        Raises:
            ConfigurationError: If the CA bundle or protocol set is unusable.
        """
        try:
            return build_ssl_context(self.protocols, verify=self.verify_certificates, ca_bundle=self.ca_bundle)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid TLS settings: {e}") from e

    @classmethod
    def from_mapping(cls, section: Mapping[str, Any]) -> TransportConfig:
        """Build a config from a ``mail.smtp`` style mapping.

        Keys: ``host``, ``port``, ``security``, ``username``, ``password``,
        ``timeout``, ``trace``, ``strict_credentials`` and a ``tls`` mapping
        with ``verify``, ``ca_bundle`` and ``protocols``.

        Raises:
            ConfigurationError: If a value has the wrong type.
        """
        known = {"host", "port", "security", "username", "password", "timeout", "trace", "strict_credentials", "tls"}
        for key in section:
            if key not in known:
                log.debug("Ignoring unknown smtp setting: %s", key)

        tls = section.get("tls") or {}
        if not isinstance(tls, Mapping):
            raise ConfigurationError("smtp 'tls' setting must be a mapping")

        protocols = DEFAULT_PROTOCOLS
        if tls.get("protocols") is not None:
            raw = tls["protocols"]
            try:
                protocols = parse_protocols([raw] if isinstance(raw, str) else raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid TLS protocols: {e}") from e

        verify = tls.get("verify", True)
        if not isinstance(verify, bool):
            raise ConfigurationError(f"smtp tls.verify must be bool, got {type(verify).__name__}")

        return cls(
            host=str(section.get("host") or ""),
            port=_optional_int(section.get("port"), "port"),
            security=section.get("security") or SecurityMode.AUTO,
            username=section.get("username") or None,
            password=section.get("password") or None,
            protocols=protocols,
            verify_certificates=verify,
            ca_bundle=tls.get("ca_bundle") or None,
            trace_path=section.get("trace") or None,
            timeout=_optional_float(section.get("timeout"), "timeout") or DEFAULT_TIMEOUT,
            strict_credentials=bool(section.get("strict_credentials", False)),
        )


def _optional_int(value: Any, name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"smtp {name} must be an integer, got {value!r}") from None


def _optional_float(value: Any, name: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"smtp {name} must be a number, got {value!r}") from None


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of one delivery attempt.

    Attributes:
        success: True when the server accepted the message.
        state: Final dispatcher state (``SENT`` or ``FAILED``).
        history: States visited, in order.
        error: Diagnostic message on failure.
        exception: The error that ended the attempt.
    """

    success: bool
    state: DispatchState
    history: tuple[DispatchState, ...] = ()
    error: str | None = None
    exception: MailError | None = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def stage(self) -> str | None:
        """Name of the stage that failed, when known."""
        if isinstance(self.exception, MailTransportError):
            return self.exception.stage
        if self.exception is not None:
            return "submit"
        return None


class Dispatcher:
    """Run one message through the delivery stages.

    Args:
        transport: Connection factory. Defaults to an
            :class:`~maillib.transports.smtp.SMTPTransport` built per send
            from the config's ``trace_path``.

    Examples:
        >>> dispatcher = Dispatcher()
        >>> dispatcher.state
        <DispatchState.IDLE: 'idle'>
    """

    def __init__(self, transport: MailTransport | None = None) -> None:
        self._transport = transport
        self._state = DispatchState.IDLE
        self._history: list[DispatchState] = [DispatchState.IDLE]

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def history(self) -> tuple[DispatchState, ...]:
        return tuple(self._history)

    def _advance(self, state: DispatchState) -> None:
        log.debug("Dispatcher state: %s -> %s", self._state.value, state.value)
        self._state = state
        self._history.append(state)

    def _transport_for(self, config: TransportConfig) -> MailTransport:
        if self._transport is not None:
            return self._transport
        from maillib.transports.smtp import SMTPTransport  # pylint: disable=import-outside-toplevel

        return SMTPTransport(trace_path=config.trace_path)

    def _preflight(self, message: MessageBuilder, config: TransportConfig) -> ssl.SSLContext | None:
        if message.is_finalized:
            raise InvalidStateError("Message was already sent; build a new message to send again")
        if not message.envelope_recipients():
            raise InvalidStateError("Message has no To, Cc or Bcc recipients")
        if not config.host or not config.host.strip():
            raise ConfigurationError("SMTP host is not set")
        if config.has_partial_credentials:
            if config.strict_credentials:
                raise ConfigurationError(
                    "Both username and password are required for authentication",
                    details={"username_set": bool(config.username), "password_set": bool(config.password)},
                )
            log.warning("Only one of username/password is set: sending without authentication")
        if config.resolved_security is SecurityMode.NONE:
            return None
        return config.ssl_context()

    def send(self, message: MessageBuilder, config: TransportConfig) -> SendResult:
        """Deliver *message* using *config*.

        Args:
            message: The message to finalize and submit.
            config: Connection settings.

        Returns:
            A :class:`SendResult`; failures after pre-flight never raise.

        Raises:
            InvalidStateError: If the message was already sent or has no recipients.
            ConfigurationError: If the host is empty, credentials are partial in
                strict mode, or TLS settings are unusable.
        """
        context = self._preflight(message, config)
        self._state = DispatchState.IDLE
        self._history = [DispatchState.IDLE]

        mode = config.resolved_security
        port = config.effective_port
        transport = self._transport_for(config)
        connection: MailConnection | None = None
        stage: type[MailTransportError] = MailConnectionError
        log.info("Sending mail via %s:%d (security=%s)", config.host, port, mode.value)

        try:
            connection = transport.connect(
                config.host,
                port,
                tls_context=context if mode is SecurityMode.IMPLICIT_TLS else None,
                timeout=config.timeout,
            )
            self._advance(DispatchState.CONNECTED)

            stage = SecurityError
            if self._secure(connection, mode, context):
                self._advance(DispatchState.SECURED)

            stage = AuthenticationError
            if config.has_credentials:
                connection.login(config.username or "", config.password or "")
                self._advance(DispatchState.AUTHENTICATED)

            stage = SubmissionError
            recipients = message.envelope_recipients()
            connection.send(message.finalize(), message.envelope_sender, recipients)
            self._advance(DispatchState.SENT)
        except MailError as e:
            return self._fail(e)
        except Exception as e:  # pylint: disable=broad-exception-caught
            wrapped = stage(f"Unexpected error during {stage.stage}: {e}")
            wrapped.__cause__ = e
            return self._fail(wrapped)
        finally:
            if connection is not None:
                self._close(connection)

        log.info("Mail delivered to %d recipient(s) via %s", len(recipients), config.host)
        return SendResult(success=True, state=self._state, history=self.history)

    def _secure(self, connection: MailConnection, mode: SecurityMode, context: ssl.SSLContext | None) -> bool:
        """Apply *mode*; return True when the session runs over TLS."""
        if mode is SecurityMode.NONE:
            return False
        if mode is SecurityMode.IMPLICIT_TLS:
            return True
        if context is None:
            raise SecurityError(f"No TLS context available for {mode.value}")
        if connection.supports_starttls():
            connection.starttls(context)
            return True
        if mode is SecurityMode.STARTTLS:
            raise SecurityError("Server does not advertise STARTTLS")
        log.warning("Server does not advertise STARTTLS: continuing without encryption")
        return False

    def _fail(self, error: MailError) -> SendResult:
        self._advance(DispatchState.FAILED)
        stage = error.stage if isinstance(error, MailTransportError) else type(error).__name__
        log.error("Mail delivery failed (%s): %s", stage, error)
        return SendResult(
            success=False,
            state=self._state,
            history=self.history,
            error=str(error),
            exception=error,
        )

    def _close(self, connection: MailConnection) -> None:
        try:
            connection.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log.warning("Error while closing mail connection: %s", e)


__all__ = [
    "DEFAULT_TIMEOUT",
    "IMPLICIT_TLS_PORT",
    "SMTP_PORT",
    "DispatchState",
    "Dispatcher",
    "SecurityMode",
    "SendResult",
    "TransportConfig",
]
