"""TLS policy for SMTP connections.

Certificates are verified by default. Turning verification off is an
explicit opt-in that logs a warning every time a context is built.

The accepted protocol versions are an immutable :class:`TLSProtocol` flag
set. Widening it means building a new set (``DEFAULT_PROTOCOLS |
TLSProtocol.TLSv1_1``), never mutating shared state.

Examples:
    >>> ctx = build_ssl_context(DEFAULT_PROTOCOLS)
    >>> ctx.check_hostname
    True
"""

from __future__ import annotations

import enum
import logging
import ssl
import warnings
from collections.abc import Iterable
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

MIN_PEM_SIZE = 64
_PEM_MARKER = "-----BEGIN"


class TLSProtocol(enum.IntFlag):
    """TLS protocol versions accepted for a connection."""

    TLSv1 = 1
    TLSv1_1 = 2
    TLSv1_2 = 4
    TLSv1_3 = 8


DEFAULT_PROTOCOLS = TLSProtocol.TLSv1_2 | TLSProtocol.TLSv1_3

_TLS_VERSIONS: dict[TLSProtocol, ssl.TLSVersion] = {
    TLSProtocol.TLSv1: ssl.TLSVersion.TLSv1,
    TLSProtocol.TLSv1_1: ssl.TLSVersion.TLSv1_1,
    TLSProtocol.TLSv1_2: ssl.TLSVersion.TLSv1_2,
    TLSProtocol.TLSv1_3: ssl.TLSVersion.TLSv1_3,
}

_OP_NO: dict[TLSProtocol, int] = {
    TLSProtocol.TLSv1_1: ssl.OP_NO_TLSv1_1,
    TLSProtocol.TLSv1_2: ssl.OP_NO_TLSv1_2,
}

_LEGACY_PROTOCOLS = TLSProtocol.TLSv1 | TLSProtocol.TLSv1_1

_PROTOCOL_ALIASES: dict[str, TLSProtocol] = {
    "tlsv1": TLSProtocol.TLSv1,
    "tlsv1.0": TLSProtocol.TLSv1,
    "tls1": TLSProtocol.TLSv1,
    "tls1.0": TLSProtocol.TLSv1,
    "tlsv1.1": TLSProtocol.TLSv1_1,
    "tlsv1_1": TLSProtocol.TLSv1_1,
    "tls1.1": TLSProtocol.TLSv1_1,
    "tlsv1.2": TLSProtocol.TLSv1_2,
    "tlsv1_2": TLSProtocol.TLSv1_2,
    "tls1.2": TLSProtocol.TLSv1_2,
    "tlsv1.3": TLSProtocol.TLSv1_3,
    "tlsv1_3": TLSProtocol.TLSv1_3,
    "tls1.3": TLSProtocol.TLSv1_3,
}


def parse_protocols(values: Iterable[str | TLSProtocol]) -> TLSProtocol:
    """Build a protocol set from names such as ``"TLSv1.2"``.

    Args:
        values: Protocol names or :class:`TLSProtocol` members.

    Returns:
        The combined flag set.

    Raises:
        ValueError: If a name is unknown or the set is empty.

    Examples:
        >>> parse_protocols(["TLSv1.2", "tls1.3"]) == DEFAULT_PROTOCOLS
        True
    """
    result = TLSProtocol(0)
    for value in values:
        if isinstance(value, TLSProtocol):
            result |= value
            continue
        member = _PROTOCOL_ALIASES.get(str(value).strip().lower())
        if member is None:
            raise ValueError(f"Unknown TLS protocol: {value!r}")
        result |= member
    if not result:
        raise ValueError("At least one TLS protocol must be allowed")
    return result


def protocol_names(protocols: TLSProtocol) -> list[str]:
    """Return the member names of *protocols*, lowest version first."""
    return [member.name for member in TLSProtocol if member in protocols and member.name]


def validate_ssl_verify(value: Any) -> bool:
    """Check that a verification flag is a real bool.

    Strings such as ``"false"`` from YAML or env vars are rejected instead of
    being silently truthy.

    Raises:
        TypeError: If *value* is not a bool.
    """
    if not isinstance(value, bool):
        raise TypeError(f"TLS verify must be bool, got {type(value).__name__}")
    if not value:
        log.warning("TLS certificate verification is DISABLED: connections are exposed to MITM attacks")
    return value


def validate_ca_bundle_path(path: str) -> str:
    """Validate a CA bundle path and return it resolved.

    Raises:
        TypeError: If *path* is not a string.
        ValueError: If the path is empty, missing, a directory, unreadable,
            or does not look like a PEM file.
    """
    if not isinstance(path, str):
        raise TypeError(f"CA bundle path must be str, got {type(path).__name__}")
    if "\x00" in path:
        raise ValueError("CA bundle path contains a null byte")
    if not path.strip():
        raise ValueError("CA bundle path cannot be empty")

    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise ValueError(f"CA bundle path does not exist: {resolved}")
    if resolved.is_dir():
        raise ValueError(f"CA bundle must be a file, not directory: {resolved}")
    try:
        content = resolved.read_bytes()
    except OSError as e:
        raise ValueError(f"CA bundle is not readable: {resolved}") from e
    if len(content) < MIN_PEM_SIZE:
        raise ValueError(f"CA bundle is too small to be a certificate: {resolved}")
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"CA bundle is not valid text/PEM: {resolved}") from e
    if _PEM_MARKER not in text:
        raise ValueError(f"CA bundle does not appear to be PEM: {resolved}")
    return str(resolved)


def build_ssl_context(
    protocols: TLSProtocol = DEFAULT_PROTOCOLS,
    *,
    verify: bool = True,
    ca_bundle: str | None = None,
) -> ssl.SSLContext:
    """Build a client ``SSLContext`` restricted to *protocols*.

    The version range spans from the lowest to the highest allowed protocol;
    versions inside that range but missing from *protocols* are switched off
    with the matching ``OP_NO_*`` option. TLS 1.0 and 1.1 are legacy-only:
    Python deprecates them, and the resulting ``DeprecationWarning`` is
    silenced here because enabling them is an explicit choice.

    Args:
        protocols: Allowed TLS versions.
        verify: Verify the server certificate and host name.
        ca_bundle: Optional PEM file used instead of the system trust store.

    Returns:
        A configured client-side context.

    Raises:
        TypeError: If *verify* is not a bool.
        ValueError: If *protocols* is empty or *ca_bundle* is invalid.
    """
    verify = validate_ssl_verify(verify)
    allowed = [member for member in TLSProtocol if member in protocols]
    if not allowed:
        raise ValueError("At least one TLS protocol must be allowed")
    excluded = [member for member in TLSProtocol if allowed[0] < member < allowed[-1] and member not in protocols]

    cafile = validate_ca_bundle_path(ca_bundle) if ca_bundle is not None else None
    context = ssl.create_default_context(cafile=cafile)
    with warnings.catch_warnings():
        if allowed[0] & _LEGACY_PROTOCOLS or excluded:
            warnings.simplefilter("ignore", DeprecationWarning)
        context.minimum_version = _TLS_VERSIONS[allowed[0]]
        context.maximum_version = _TLS_VERSIONS[allowed[-1]]
        for member in excluded:
            context.options |= _OP_NO[member]
    if excluded:
        log.debug("TLS versions excluded inside the allowed range: %s", ", ".join(m.name or "" for m in excluded))
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


__all__ = [
    "DEFAULT_PROTOCOLS",
    "MIN_PEM_SIZE",
    "TLSProtocol",
    "build_ssl_context",
    "parse_protocols",
    "protocol_names",
    "validate_ca_bundle_path",
    "validate_ssl_verify",
]
