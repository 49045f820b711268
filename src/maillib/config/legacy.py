"""Legacy key/value option ingestion.

Older mail APIs configure delivery through a bag of named fields, often
CDO-style schema URIs such as
``http://schemas.microsoft.com/cdo/configuration/smtpserver``. Keys are
matched case-insensitively on their last ``/`` segment and dispatched
through a table of typed setters.

Examples:
    >>> from maillib.sender import MailSender
    >>> sender = apply_legacy_options(MailSender(), {"SmtpServer": "mx.example.com", "smtpserverport": "587"})
    >>> (sender.host, sender.port)
    ('mx.example.com', 587)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from maillib.exceptions import AddressParseError, ConfigurationError

if TYPE_CHECKING:
    from maillib.sender import MailSender

log = logging.getLogger(__name__)

CDO_NAMESPACE = "http://schemas.microsoft.com/cdo/configuration/"

_TRUE_VALUES = frozenset({"true", "yes", "on", "1"})
_FALSE_VALUES = frozenset({"false", "no", "off", "0"})


class LegacyOption(str, Enum):
    """Recognised legacy option names."""

    SMTP_SERVER = "smtpserver"
    SMTP_SERVER_PORT = "smtpserverport"
    SEND_USERNAME = "sendusername"
    SEND_PASSWORD = "sendpassword"
    SMTP_USE_SSL = "smtpusessl"
    FROM = "from"
    REPLY_TO = "replyto"
    SEND_USING = "sendusing"

    @classmethod
    def lookup(cls, key: str) -> LegacyOption | None:
        """Return the option for *key*, or None if it is not recognised.

        Examples:
            >>> LegacyOption.lookup(CDO_NAMESPACE + "SMTPServerPort")
            <LegacyOption.SMTP_SERVER_PORT: 'smtpserverport'>
        """
        name = str(key).rsplit("/", 1)[-1].strip().lower()
        try:
            return cls(name)
        except ValueError:
            return None

    @property
    def uri(self) -> str:
        """The CDO schema URI for this option."""
        return CDO_NAMESPACE + self.value


def parse_bool(value: Any, option: str = "value") -> bool:
    """Coerce a legacy boolean (``True``, ``"yes"``, ``1``...).

    Raises:
        ConfigurationError: If *value* is not a recognisable boolean.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    raise ConfigurationError(f"Invalid boolean for {option}: {value!r}", details={"option": option, "value": value})


def parse_port(value: Any, option: str = "port") -> int:
    """Coerce a legacy port number.

    Raises:
        ConfigurationError: If *value* is not an integer in 1..65535.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid port for {option}: {value!r}")
    try:
        port = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid port for {option}: {value!r}", details={"option": option}) from None
    if not 0 < port < 65536:
        raise ConfigurationError(f"Port out of range for {option}: {port}", details={"option": option})
    return port


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _set_host(sender: MailSender, value: Any) -> None:
    sender.host = _text(value) or ""


def _set_port(sender: MailSender, value: Any) -> None:
    sender.port = parse_port(value, LegacyOption.SMTP_SERVER_PORT.value)


def _set_username(sender: MailSender, value: Any) -> None:
    sender.username = _text(value)


def _set_password(sender: MailSender, value: Any) -> None:
    # Passwords keep surrounding whitespace.
    sender.password = None if value is None else str(value)


def _set_use_ssl(sender: MailSender, value: Any) -> None:
    sender.use_ssl = parse_bool(value, LegacyOption.SMTP_USE_SSL.value)


def _set_from(sender: MailSender, value: Any) -> None:
    sender.set_from(_text(value))


def _set_reply_to(sender: MailSender, value: Any) -> None:
    sender.set_reply_to(_text(value))


def _ignore(sender: MailSender, value: Any) -> None:  # pylint: disable=unused-argument
    log.debug("Ignoring legacy option %s=%r (single transport mode)", LegacyOption.SEND_USING.value, value)


_SETTERS: dict[LegacyOption, Callable[[MailSender, Any], None]] = {
    LegacyOption.SMTP_SERVER: _set_host,
    LegacyOption.SMTP_SERVER_PORT: _set_port,
    LegacyOption.SEND_USERNAME: _set_username,
    LegacyOption.SEND_PASSWORD: _set_password,
    LegacyOption.SMTP_USE_SSL: _set_use_ssl,
    LegacyOption.FROM: _set_from,
    LegacyOption.REPLY_TO: _set_reply_to,
    LegacyOption.SEND_USING: _ignore,
}


def apply_legacy_options(sender: MailSender, options: Mapping[str, Any] | None) -> MailSender:
    """Apply legacy key/value *options* to *sender*.

    ``smtpusessl`` is resolved against the final port when the transport
    settings are frozen, so option order does not matter.

    Args:
        sender: The sender to configure.
        options: Option mapping; unrecognised keys are ignored.

    Returns:
        The same sender.

    Raises:
        ConfigurationError: If *options* is None, a value is unusable, or no
            SMTP server is configured afterwards.
    """
    if options is None:
        raise ConfigurationError("Legacy options cannot be None")
    if not isinstance(options, Mapping):
        raise ConfigurationError(f"Legacy options must be a mapping, got {type(options).__name__}")

    for key, value in options.items():
        option = LegacyOption.lookup(key)
        if option is None:
            log.debug("Ignoring unknown legacy option: %s", key)
            continue
        try:
            _SETTERS[option](sender, value)
        except AddressParseError as e:
            raise ConfigurationError(f"Invalid address for {option.value}: {e}", details={"option": option.value}) from e

    if not sender.host:
        raise ConfigurationError(f"Legacy options do not define {LegacyOption.SMTP_SERVER.value}")
    return sender


__all__ = [
    "CDO_NAMESPACE",
    "LegacyOption",
    "apply_legacy_options",
    "parse_bool",
    "parse_port",
]
