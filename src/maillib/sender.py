"""Sender facade: one message plus its transport settings.

:class:`MailSender` is a :class:`~maillib.builder.MessageBuilder` carrying
property-style connection settings, for callers used to configuration-object
mail APIs. Settings can come from properties, from legacy key/value options
(:meth:`MailSender.configure`) or from a YAML config file
(:meth:`MailSender.from_config`).

Examples:
    >>> sender = MailSender()
    >>> sender.host = "smtp.example.com"
    >>> sender.port = 465
    >>> sender.transport_config().resolved_security
    <SecurityMode.IMPLICIT_TLS: 'implicit-tls'>
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from maillib.builder import MessageBuilder
from maillib.config.legacy import apply_legacy_options
from maillib.config.loader import load_config
from maillib.dispatcher import (
    DEFAULT_TIMEOUT,
    IMPLICIT_TLS_PORT,
    Dispatcher,
    SecurityMode,
    SendResult,
    TransportConfig,
)
from maillib.exceptions import ConfigurationError
from maillib.ssl import DEFAULT_PROTOCOLS, TLSProtocol, parse_protocols

if TYPE_CHECKING:
    from pathlib import Path

    from maillib.filesystem import FileReader
    from maillib.transport import MailTransport

log = logging.getLogger(__name__)


class MailSender(MessageBuilder):
    """Build and send one message.

    Args:
        transport: Connection factory used by :meth:`send`; defaults to SMTP.
        reader: File reader for bodies, attachments and images.
    """

    def __init__(self, *, transport: MailTransport | None = None, reader: FileReader | None = None) -> None:
        super().__init__(reader=reader)
        self._transport = transport
        self.host = ""
        self.port: int | None = None
        self.username: str | None = None
        self.password: str | None = None
        self.ca_bundle: str | None = None
        self.trace_path: str | None = None
        self.timeout: float = DEFAULT_TIMEOUT
        self.strict_credentials = False
        self._security: SecurityMode | None = None
        self._use_ssl: bool | None = None
        self._verify_certificates = True
        self._protocols: TLSProtocol = DEFAULT_PROTOCOLS
        self._last_result: SendResult | None = None

    @property
    def security(self) -> SecurityMode:
        """Connection protection mode.

        When only :attr:`use_ssl` was set, the mode follows the port:
        implicit TLS on 465, STARTTLS elsewhere.
        """
        if self._security is not None:
            return self._security
        if self._use_ssl is None:
            return SecurityMode.AUTO
        if not self._use_ssl:
            return SecurityMode.NONE
        if self.port == IMPLICIT_TLS_PORT:
            return SecurityMode.IMPLICIT_TLS
        return SecurityMode.STARTTLS

    @security.setter
    def security(self, value: SecurityMode | str) -> None:
        self._security = SecurityMode.parse(value)
        self._use_ssl = None

    @property
    def use_ssl(self) -> bool:
        """Legacy on/off TLS switch."""
        return self.security is not SecurityMode.NONE

    @use_ssl.setter
    def use_ssl(self, value: bool) -> None:
        self._use_ssl = bool(value)
        self._security = None

    @property
    def verify_certificates(self) -> bool:
        return self._verify_certificates

    @verify_certificates.setter
    def verify_certificates(self, value: bool) -> None:
        if not isinstance(value, bool):
            raise ConfigurationError(f"verify_certificates must be bool, got {type(value).__name__}")
        if not value:
            log.warning("Certificate verification disabled for %s", self.host or "<unset host>")
        self._verify_certificates = value

    @property
    def protocols(self) -> TLSProtocol:
        """Allowed TLS versions (TLS 1.2 and 1.3 by default)."""
        return self._protocols

    def allow_protocols(self, *protocols: TLSProtocol | str) -> MailSender:
        """Add *protocols* to the allowed TLS versions.

        Raises:
            ConfigurationError: If a protocol name is unknown.
        """
        try:
            self._protocols = self._protocols | parse_protocols(protocols)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        return self

    @property
    def last_result(self) -> SendResult | None:
        """Result of the last :meth:`send`, if any."""
        return self._last_result

    def configure(self, options: Mapping[str, Any] | None) -> MailSender:
        """Apply legacy key/value options (see :mod:`maillib.config.legacy`)."""
        return apply_legacy_options(self, options)  # type: ignore[return-value]

    def from_config(self, config: Mapping[str, Any] | str | Path | None = None) -> MailSender:
        """Apply ``mail.smtp`` and ``mail.defaults`` from a config file or mapping.

        Args:
            config: Loaded configuration, a path to a YAML file, or None to
                search the default locations.

        Raises:
            ConfigurationError: If the file or any setting is invalid.
        """
        data = config if isinstance(config, Mapping) else load_config(config)
        mail = data.get("mail") or {}
        smtp = mail.get("smtp") or {}
        defaults = mail.get("defaults") or {}
        if not isinstance(smtp, Mapping) or not isinstance(defaults, Mapping):
            raise ConfigurationError("mail.smtp and mail.defaults must be mappings")

        if smtp:
            settings = TransportConfig.from_mapping(smtp)
            self.host = settings.host
            self.port = settings.port
            self.security = settings.security
            self.username = settings.username
            self.password = settings.password
            self._protocols = settings.protocols
            self.verify_certificates = settings.verify_certificates
            self.ca_bundle = settings.ca_bundle
            self.trace_path = settings.trace_path
            self.timeout = settings.timeout
            self.strict_credentials = settings.strict_credentials

        if defaults.get("from") and not self.from_addresses:
            self.set_from(defaults["from"])
        if defaults.get("reply_to") and not self.reply_to:
            self.set_reply_to(defaults["reply_to"])
        return self

    def transport_config(self) -> TransportConfig:
        """Freeze the current settings into a :class:`TransportConfig`."""
        return TransportConfig(
            host=self.host,
            port=self.port,
            security=self.security,
            username=self.username,
            password=self.password,
            protocols=self._protocols,
            verify_certificates=self._verify_certificates,
            ca_bundle=self.ca_bundle,
            trace_path=self.trace_path,
            timeout=self.timeout,
            strict_credentials=self.strict_credentials,
        )

    def send(self, **overrides: Any) -> SendResult:
        """Finalize and deliver the message.

        Args:
            **overrides: :class:`TransportConfig` fields replacing the
                current settings for this call only.

        Returns:
            The delivery result.

        Raises:
            InvalidStateError: If the message was already sent or has no recipients.
            ConfigurationError: If the settings are unusable.
        """
        config = self.transport_config()
        if overrides:
            config = dataclasses.replace(config, **overrides)
        self._last_result = Dispatcher(self._transport).send(self, config)
        return self._last_result


__all__ = ["MailSender"]
