"""SMTP transport built on :mod:`smtplib`.

:class:`SMTPTransport` opens :class:`SMTPConnection` sessions and maps every
``smtplib``, ``ssl`` and socket failure to the :mod:`maillib.exceptions`
class of the stage that failed.

Protocol tracing: when a trace path is configured, or the module logger is
enabled for TRACE, ``smtplib`` debug output is routed through a
:class:`ProtocolTrace`. Lines are appended to the trace file and logged at
TRACE level with ``[SMTP] >>>`` / ``[SMTP] <<<`` prefixes. Credentials sent
during ``AUTH`` are masked. Without either, the client runs with debugging
off.

Examples:
    >>> transport = SMTPTransport(trace_path="/tmp/smtp.trace")  # doctest: +SKIP
    >>> connection = transport.connect("smtp.example.com", 587, timeout=30)  # doctest: +SKIP
"""

from __future__ import annotations

import logging
import smtplib
import ssl
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

from maillib.exceptions import (
    AuthenticationError,
    MailConnectionError,
    SecurityError,
    SubmissionError,
)
from maillib.logging import TRACE_LEVEL
from maillib.transport import MailConnection, MailTransport

if TYPE_CHECKING:
    from collections.abc import Sequence
    from email.message import EmailMessage

__all__ = ["DEFAULT_TIMEOUT", "ProtocolTrace", "SMTPConnection", "SMTPTransport"]

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
_MASK = "********"


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _extract_ssl_info(sock: ssl.SSLSocket | None) -> dict[str, Any]:
    """Collect TLS version, cipher and peer certificate names from a socket.

    Each lookup is independent: a failing one is skipped, never raised.
    """
    if sock is None:
        return {}

    info: dict[str, Any] = {}
    try:
        info["version"] = sock.version() or "unknown"
    except Exception:  # pylint: disable=broad-exception-caught
        info["version"] = "unknown"

    try:
        cipher = sock.cipher()
    except Exception:  # pylint: disable=broad-exception-caught
        cipher = None
    if cipher:
        info["cipher_name"], info["cipher_protocol"], info["cipher_bits"] = cipher

    try:
        cert = sock.getpeercert()
    except Exception:  # pylint: disable=broad-exception-caught
        cert = None
    if cert:
        peer_cn = _common_name(cert.get("subject"))
        if peer_cn:
            info["peer_cn"] = peer_cn
        issuer_cn = _common_name(cert.get("issuer"))
        if issuer_cn:
            info["issuer_cn"] = issuer_cn
        if "notBefore" in cert:
            info["valid_from"] = cert["notBefore"]
        if "notAfter" in cert:
            info["valid_until"] = cert["notAfter"]
    return info


def _common_name(rdns: Any) -> str | None:
    if not isinstance(rdns, tuple):
        return None
    for rdn in rdns:
        if not isinstance(rdn, tuple):
            continue
        for attribute in rdn:
            if isinstance(attribute, tuple) and len(attribute) == 2 and attribute[0] == "commonName":
                return str(attribute[1])
    return None


class ProtocolTrace:
    """Sink for the SMTP dialogue of one connection.

    Args:
        path: File the dialogue is appended to, or None to log only.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._handle: IO[str] | None = None
        self._lock = threading.Lock()
        self._in_auth = False

    @property
    def path(self) -> Path | None:
        return self._path

    def open(self, host: str, port: int) -> ProtocolTrace:
        """Open the trace file and write a session header.

        A trace file that cannot be opened disables file output with a
        warning; delivery itself is not affected.
        """
        if self._path is None:
            return self
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self._path.open("a", encoding="utf-8")
        except OSError as e:
            log.warning("Cannot open SMTP trace file %s: %s", self._path, e)
            self._handle = None
            return self
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self._handle.write(f"# {stamp} session {host}:{port}\n")
        return self

    def write(self, *args: Any) -> None:
        """Record one ``smtplib`` debug line."""
        line = self._mask(" ".join(_decode(arg) for arg in args))
        if log.isEnabledFor(TRACE_LEVEL):
            log.log(TRACE_LEVEL, "[SMTP] %s", _prefixed(line))
        if self._handle is not None:
            with self._lock:
                self._handle.write(line + "\n")
                self._handle.flush()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _mask(self, line: str) -> str:
        """Hide credentials between ``AUTH`` and the server's verdict."""
        if line.startswith("send:"):
            payload = line[len("send:") :].strip().strip("'\"")
            if payload.upper().startswith("AUTH "):
                self._in_auth = True
                mechanism = payload.split()[1] if len(payload.split()) > 1 else ""
                return f"send: 'AUTH {mechanism} {_MASK}'"
            if self._in_auth:
                return f"send: '{_MASK}'"
        elif line.startswith("reply: retcode") and self._in_auth and "retcode (334)" not in line:
            self._in_auth = False
        return line


def _prefixed(line: str) -> str:
    if line.startswith("send:"):
        return ">>> " + line[len("send:") :].strip()
    if line.startswith("reply:"):
        return "<<< " + line[len("reply:") :].strip()
    return line


def _client_class(base: type[smtplib.SMTP], trace: ProtocolTrace | None) -> type[smtplib.SMTP]:
    """Return *base*, or a subclass that feeds debug output into *trace*."""
    if trace is None:
        return base

    class _TracedClient(base):  # type: ignore[misc,valid-type]
        debuglevel = 1

        def _print_debug(self, *args: Any) -> None:
            trace.write(*args)

    return _TracedClient


class SMTPConnection(MailConnection):
    """One open SMTP session.

    Args:
        client: Connected ``smtplib`` client.
        host: Server host, for messages.
        trace: Trace sink closed together with the session.
        tls_active: True when the socket already runs over TLS.
    """

    def __init__(
        self,
        client: smtplib.SMTP,
        *,
        host: str,
        trace: ProtocolTrace | None = None,
        tls_active: bool = False,
    ) -> None:
        self._client = client
        self._host = host
        self._trace = trace
        self._tls_active = tls_active
        self._closed = False

    @property
    def client(self) -> smtplib.SMTP:
        return self._client

    @property
    def tls_active(self) -> bool:
        """True once the session runs over TLS."""
        return self._tls_active

    def ehlo(self) -> None:
        """Greet the server so its extensions are known."""
        try:
            self._client.ehlo()
        except (smtplib.SMTPException, OSError) as e:
            raise MailConnectionError(f"EHLO to {self._host} failed: {e}") from e

    def supports_starttls(self) -> bool:
        return bool(self._client.has_extn("STARTTLS"))

    def starttls(self, context: ssl.SSLContext) -> None:
        log.log(TRACE_LEVEL, "[SMTP] Upgrading connection with STARTTLS")
        try:
            self._client.starttls(context=context)
        except smtplib.SMTPNotSupportedError as e:
            raise SecurityError(f"Server {self._host} does not support STARTTLS") from e
        except (ssl.SSLError, ssl.CertificateError) as e:
            raise SecurityError(f"TLS handshake with {self._host} failed: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise SecurityError(f"STARTTLS with {self._host} failed: {e}") from e
        self._tls_active = True
        self._log_tls_details()
        try:
            self._client.ehlo()
        except (smtplib.SMTPException, OSError) as e:
            raise SecurityError(f"EHLO after STARTTLS failed: {e}") from e

    def login(self, username: str, password: str) -> None:
        log.log(TRACE_LEVEL, "[SMTP] Authenticating as: %s", username)
        try:
            self._client.login(username, password)
        except smtplib.SMTPAuthenticationError as e:
            raise AuthenticationError(
                f"Authentication failed for '{username}': {e.smtp_code} {_decode(e.smtp_error)}"
            ) from e
        except smtplib.SMTPNotSupportedError as e:
            raise AuthenticationError(f"Authentication failed: {self._host} does not offer AUTH") from e
        except (smtplib.SMTPException, OSError) as e:
            raise AuthenticationError(f"Authentication failed for '{username}': {e}") from e
        log.log(TRACE_LEVEL, "[SMTP] Authentication successful")

    def send(self, message: EmailMessage, sender: str | None, recipients: Sequence[str]) -> None:
        envelope_from = sender or ""
        log.log(TRACE_LEVEL, "[SMTP] MAIL FROM: <%s>", envelope_from)
        log.log(TRACE_LEVEL, "[SMTP] RCPT TO: %s", ", ".join(f"<{rcpt}>" for rcpt in recipients))
        log.log(TRACE_LEVEL, "[SMTP] Subject: %s", message.get("Subject", ""))
        try:
            refused = self._client.send_message(message, from_addr=envelope_from, to_addrs=list(recipients))
        except smtplib.SMTPRecipientsRefused as e:
            code, reason = next(iter(e.recipients.values()), (None, b""))
            raise SubmissionError("All recipients were refused", smtp_code=code, server_reason=_decode(reason)) from e
        except smtplib.SMTPSenderRefused as e:
            raise SubmissionError(
                f"Sender <{_decode(e.sender)}> was refused",
                smtp_code=e.smtp_code,
                server_reason=_decode(e.smtp_error),
            ) from e
        except smtplib.SMTPResponseException as e:
            raise SubmissionError(
                "Message was rejected",
                smtp_code=e.smtp_code,
                server_reason=_decode(e.smtp_error),
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            raise SubmissionError(f"Submission to {self._host} failed: {e}") from e

        if refused:
            rcpt, (code, reason) = next(iter(refused.items()))
            raise SubmissionError(
                f"{len(refused)} of {len(recipients)} recipient(s) refused, first <{rcpt}>",
                smtp_code=code,
                server_reason=_decode(reason),
            )
        log.log(TRACE_LEVEL, "[SMTP] Message sent successfully")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._client.quit()
        except (smtplib.SMTPException, OSError) as e:
            log.debug("QUIT to %s failed, closing socket: %s", self._host, e)
            self._client.close()
        finally:
            if self._trace is not None:
                self._trace.close()

    def _log_tls_details(self) -> None:
        if not log.isEnabledFor(TRACE_LEVEL):
            return
        info = _extract_ssl_info(getattr(self._client, "sock", None))
        if not info:
            return
        log.log(
            TRACE_LEVEL,
            "[SMTP] TLS: %s, cipher=%s (%s bits)",
            info.get("version", "unknown"),
            info.get("cipher_name", "unknown"),
            info.get("cipher_bits", "?"),
        )
        if "peer_cn" in info:
            log.log(
                TRACE_LEVEL,
                "[SMTP] Certificate: CN=%s, issuer=%s, valid until %s",
                info["peer_cn"],
                info.get("issuer_cn", "unknown"),
                info.get("valid_until", "unknown"),
            )


class SMTPTransport(MailTransport):
    """Open SMTP sessions with :mod:`smtplib`.

    Args:
        trace_path: File receiving the SMTP dialogue of every connection.
        local_hostname: Name sent in EHLO (defaults to the local FQDN).
    """

    def __init__(self, *, trace_path: str | Path | None = None, local_hostname: str | None = None) -> None:
        self._trace_path = trace_path
        self._local_hostname = local_hostname

    def _new_trace(self, host: str, port: int) -> ProtocolTrace | None:
        if self._trace_path is None and not log.isEnabledFor(TRACE_LEVEL):
            return None
        return ProtocolTrace(self._trace_path).open(host, port)

    def connect(
        self,
        host: str,
        port: int,
        *,
        tls_context: ssl.SSLContext | None = None,
        timeout: float | None = None,
    ) -> SMTPConnection:
        implicit_tls = tls_context is not None
        log.log(
            TRACE_LEVEL,
            "[SMTP] Connecting to %s:%d (%s)",
            host,
            port,
            "SSL" if implicit_tls else "plain",
        )
        trace = self._new_trace(host, port)
        base = smtplib.SMTP_SSL if implicit_tls else smtplib.SMTP
        kwargs: dict[str, Any] = {
            "host": host,
            "port": port,
            "timeout": timeout if timeout is not None else DEFAULT_TIMEOUT,
            "local_hostname": self._local_hostname,
        }
        if implicit_tls:
            kwargs["context"] = tls_context

        try:
            client = _client_class(base, trace)(**kwargs)
        except (ssl.SSLError, ssl.CertificateError) as e:
            if trace is not None:
                trace.close()
            raise SecurityError(f"TLS handshake with {host}:{port} failed: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            if trace is not None:
                trace.close()
            raise MailConnectionError(f"Cannot connect to {host}:{port}: {e}") from e

        connection = SMTPConnection(client, host=host, trace=trace, tls_active=implicit_tls)
        if implicit_tls:
            connection._log_tls_details()  # pylint: disable=protected-access
        try:
            connection.ehlo()
        except MailConnectionError:
            connection.close()
            raise
        return connection
