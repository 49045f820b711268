"""Mailbox address parsing and validation.

Address lists are split on top-level commas only: commas inside a quoted
display name, an angle-bracket address or a parenthesised comment belong to
the entry they appear in::

    >>> [a.address for a in parse_address_list('"Doe, John" <john@x.com>, jane@y.com')]
    ['john@x.com', 'jane@y.com']

A list is accepted or rejected as a whole: one unparsable entry fails the
entire call with :class:`~maillib.exceptions.AddressParseError`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from email.headerregistry import Address

from maillib.exceptions import AddressParseError

_MAX_LOCAL_PART = 64
_MAX_DOMAIN = 255
_MAX_LABEL = 63

_LOCAL_PART_PATTERN = re.compile(r"^[A-Za-z0-9!#$%&'*+/=?^_`{|}~.-]+$")
_LABEL_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$")


@dataclass(frozen=True, slots=True)
class MailAddress:
    """A single mailbox: optional display name plus addr-spec.

    Attributes:
        address: The ``local@domain`` address.
        name: Display name, or None.

    Examples:
        >>> MailAddress("grace@example.org", "Grace Hopper").formatted
        'Grace Hopper <grace@example.org>'
    """

    address: str
    name: str | None = None

    @property
    def formatted(self) -> str:
        """Return the RFC 5322 rendering, quoting the name when needed."""
        return str(self.to_header())

    def to_header(self) -> Address:
        """Return an :class:`email.headerregistry.Address` for header assignment."""
        local, _, domain = self.address.rpartition("@")
        return Address(display_name=(self.name or "").strip(), username=local, domain=domain)

    def __str__(self) -> str:
        return self.formatted


def validate_email(address: str) -> str:
    """Check an addr-spec and return it stripped.

    Raises:
        AddressParseError: If the address is empty or malformed.

    Examples:
        >>> validate_email(" user@example.com ")
        'user@example.com'
    """
    candidate = address.strip()
    if not candidate:
        raise AddressParseError(address, "empty address")
    if candidate.count("@") != 1:
        raise AddressParseError(address, "expected exactly one '@'")

    local, domain = candidate.split("@")
    if not local or len(local) > _MAX_LOCAL_PART:
        raise AddressParseError(address, "local part is empty or too long")
    if not _LOCAL_PART_PATTERN.match(local) or local.startswith(".") or local.endswith(".") or ".." in local:
        raise AddressParseError(address, "invalid characters in local part")
    if not domain or len(domain) > _MAX_DOMAIN:
        raise AddressParseError(address, "domain is empty or too long")

    labels = domain.split(".")
    if len(labels) < 2:
        raise AddressParseError(address, "domain must contain a dot")
    for label in labels:
        if not label or len(label) > _MAX_LABEL or not _LABEL_PATTERN.match(label):
            raise AddressParseError(address, f"invalid domain label {label!r}")
    if len(labels[-1]) < 2:
        raise AddressParseError(address, "top-level domain is too short")
    return candidate


def make_address(email: str, name: str | None = None) -> MailAddress:
    """Validate *email* and pair it with an optional display name."""
    display = name.strip() if name else None
    return MailAddress(validate_email(email), display or None)


def split_address_list(value: str) -> list[str]:
    """Split *value* on commas that sit outside quotes, brackets and comments.

    Raises:
        AddressParseError: On an unterminated quote, bracket or comment.
    """
    entries: list[str] = []
    current: list[str] = []
    in_quotes = False
    in_angle = False
    comment_depth = 0
    escaped = False

    for char in value:
        current.append(char)
        if escaped:
            escaped = False
            continue
        if char == "\\" and (in_quotes or comment_depth):
            escaped = True
        elif in_quotes:
            if char == '"':
                in_quotes = False
        elif comment_depth:
            if char == "(":
                comment_depth += 1
            elif char == ")":
                comment_depth -= 1
        elif char == '"':
            in_quotes = True
        elif char == "(":
            comment_depth = 1
        elif char == "<":
            if in_angle:
                raise AddressParseError(value, "nested '<'")
            in_angle = True
        elif char == ">":
            if not in_angle:
                raise AddressParseError(value, "unbalanced '>'")
            in_angle = False
        elif char == "," and not in_angle:
            current.pop()
            entries.append("".join(current))
            current = []

    if in_quotes:
        raise AddressParseError(value, "unterminated quoted string")
    if in_angle:
        raise AddressParseError(value, "unterminated '<'")
    if comment_depth:
        raise AddressParseError(value, "unterminated comment")
    entries.append("".join(current))
    return entries


def _strip_comments(entry: str) -> tuple[str, str | None]:
    """Remove top-level comments, returning the text and the first comment."""
    text: list[str] = []
    comment: list[str] = []
    first_comment: str | None = None
    depth = 0
    in_quotes = False
    escaped = False

    for char in entry:
        if escaped:
            (comment if depth else text).append(char)
            escaped = False
            continue
        if char == "\\" and (in_quotes or depth):
            escaped = True
            if not depth:
                text.append(char)
            continue
        if depth:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    if first_comment is None:
                        first_comment = "".join(comment).strip()
                    comment = []
                    continue
            comment.append(char)
        elif char == "(" and not in_quotes:
            depth = 1
        else:
            if char == '"':
                in_quotes = not in_quotes
            text.append(char)
    return "".join(text), first_comment or None


def _find_angle_address(text: str) -> tuple[int, int] | None:
    """Return the positions of the top-level ``<`` and ``>`` in *text*.

    Brackets inside a quoted display name are ignored.

    Raises:
        AddressParseError: On a stray ``>`` or an unterminated quote or bracket.
    """
    in_quotes = False
    escaped = False
    start: int | None = None
    for index, char in enumerate(text):
        if escaped:
            escaped = False
        elif in_quotes:
            if char == "\\":
                escaped = True
            elif char == '"':
                in_quotes = False
        elif char == '"':
            if start is not None:
                raise AddressParseError(text, "quote inside angle-bracket address")
            in_quotes = True
        elif char == "<":
            if start is not None:
                raise AddressParseError(text, "nested '<'")
            start = index
        elif char == ">":
            if start is None:
                raise AddressParseError(text, "unbalanced '>'")
            return start, index
    if in_quotes:
        raise AddressParseError(text, "unterminated quoted string")
    if start is not None:
        raise AddressParseError(text, "unterminated '<'")
    return None


def _decode_phrase(phrase: str) -> str:
    """Decode a display-name phrase made of atoms and quoted strings.

    Quoted strings lose their quotes and backslash escapes; whitespace
    outside them is folded to single spaces.
    """
    out: list[str] = []
    in_quotes = False
    escaped = False
    for char in phrase:
        if escaped:
            out.append(char)
            escaped = False
        elif in_quotes:
            if char == "\\":
                escaped = True
            elif char == '"':
                in_quotes = False
            else:
                out.append(char)
        elif char == '"':
            in_quotes = True
        elif char.isspace():
            if out and out[-1] != " ":
                out.append(" ")
        else:
            out.append(char)
    if in_quotes:
        raise AddressParseError(phrase, "unterminated quoted string")
    return "".join(out).strip()


def parse_address(entry: str) -> MailAddress:
    """Parse one ``name <addr>`` or bare ``addr`` entry.

    The display name may mix atoms and quoted strings
    (``John "Johnny" Doe <john@x.com>``); quoted parts may hold ``<``, ``>``
    or commas. A comment after a bare address is used as the display name
    (``jane@y.com (Jane)``).

    Raises:
        AddressParseError: If the entry is malformed.
    """
    text, comment = _strip_comments(entry)
    text = text.strip()
    if not text:
        raise AddressParseError(entry, "empty entry")

    angle = _find_angle_address(text)
    if angle is not None:
        start, end = angle
        if text[end + 1 :].strip():
            raise AddressParseError(entry, "unexpected text after '>'")
        address = text[start + 1 : end]
        if not address.strip():
            raise AddressParseError(entry, "empty angle-bracket address")
        return make_address(address, _decode_phrase(text[:start]) or comment)

    if any(char in text for char in '<>"') or any(char.isspace() for char in text):
        raise AddressParseError(entry, "expected 'name <address>' or a bare address")
    return make_address(text, comment)


def parse_address_list(value: str | None) -> list[MailAddress]:
    """Parse a comma-separated address list.

    Blank members (``"a@x.com, , b@y.com"``) are skipped; blank input yields
    an empty list.

    Raises:
        AddressParseError: If any entry is malformed. Nothing is returned in
            that case, so callers can keep their previous list.
    """
    if value is None or not value.strip():
        return []
    return [parse_address(entry) for entry in split_address_list(value) if entry.strip()]


__all__ = [
    "MailAddress",
    "make_address",
    "parse_address",
    "parse_address_list",
    "split_address_list",
    "validate_email",
]
