"""Mutable builder for one outbound message.

The builder accumulates addresses, bodies, attachments and embedded images
in any order, then :meth:`MessageBuilder.finalize` turns them into an
:class:`email.message.EmailMessage`. Attachment and image files are read at
finalize time only.

Embedded images come in two flavours:

- :meth:`MessageBuilder.add_embedded_image` queues a *trailing* image whose
  ``<img src="cid:...">`` reference is appended to the HTML body by
  ``finalize``. Replacing ``html_body`` does not drop it.
- :meth:`MessageBuilder.append_embedded_image` appends the reference to the
  HTML body immediately. Replacing ``html_body`` afterwards leaves the image
  part in the message with nothing pointing at it.

``finalize`` is not idempotent: each call appends the trailing references
again. A message is meant to be finalized once, by the dispatcher.

Examples:
    >>> builder = MessageBuilder()
    >>> builder.add_to("user@example.com").append_text("Hello")  # doctest: +ELLIPSIS
    <maillib.builder.MessageBuilder object at ...>
    >>> builder.finalize()["To"]
    'user@example.com'
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from maillib.addresses import MailAddress, make_address, parse_address, parse_address_list
from maillib.filesystem import FileReader, LocalFileReader

if TYPE_CHECKING:
    from collections.abc import Sequence

log = logging.getLogger(__name__)

_CONTENT_ID_DOMAIN = "maillib.local"
_DEFAULT_MIME_TYPE = ("application", "octet-stream")


class RecipientRole(str, Enum):
    """Address lists held by a message.

    Attributes:
        TO: Primary recipients.
        CC: Carbon-copy recipients.
        BCC: Blind carbon-copy recipients (stripped from the wire copy).
        REPLY_TO: Reply-To address.
        FROM: Author address.
    """

    TO = "to"
    CC = "cc"
    BCC = "bcc"
    REPLY_TO = "reply_to"
    FROM = "from"


class ImagePlacement(str, Enum):
    """Where the reference to an embedded image is written.

    Attributes:
        TRAILING: Appended to the HTML body at finalize time.
        INLINE: Appended to the HTML body when the image is added.
    """

    TRAILING = "trailing"
    INLINE = "inline"


_HEADERS: dict[RecipientRole, str] = {
    RecipientRole.FROM: "From",
    RecipientRole.TO: "To",
    RecipientRole.CC: "Cc",
    RecipientRole.BCC: "Bcc",
    RecipientRole.REPLY_TO: "Reply-To",
}

# Legacy single-address semantics: only the first parsed entry is kept.
_SINGLE_ADDRESS_ROLES = frozenset({RecipientRole.FROM, RecipientRole.REPLY_TO})

_ENVELOPE_ROLES = (RecipientRole.TO, RecipientRole.CC, RecipientRole.BCC)


@dataclass(frozen=True, slots=True)
class Attachment:
    """A file attached to the message, read at finalize time."""

    path: Path


@dataclass(frozen=True, slots=True)
class EmbeddedImage:
    """An image part referenced from the HTML body by content-id.

    Attributes:
        path: Image file, read at finalize time.
        content_id: Unique id without angle brackets.
        placement: When the HTML reference is written.
    """

    path: Path
    content_id: str
    placement: ImagePlacement

    @property
    def reference(self) -> str:
        """Return the HTML snippet pointing at this image."""
        return f'<img src="cid:{self.content_id}">'


def generate_content_id() -> str:
    """Return a fresh content-id (``make_msgid`` without the brackets)."""
    return make_msgid(domain=_CONTENT_ID_DOMAIN)[1:-1]


def _guess_mime_type(path: Path) -> tuple[str, str]:
    mime_type, encoding = mimetypes.guess_type(path.name)
    if mime_type is None or encoding is not None:
        return _DEFAULT_MIME_TYPE
    maintype, _, subtype = mime_type.partition("/")
    return maintype, subtype


class MessageBuilder:
    """Accumulate the parts of one outbound message.

    Mutators return the builder so calls can be chained. Addresses are
    validated when they are added; files are not touched until
    :meth:`finalize`, except for the ``*_from_file`` body helpers.

    Args:
        reader: File reader used for bodies, attachments and images.

    Examples:
        >>> builder = MessageBuilder()
        >>> _ = builder.set_recipients(RecipientRole.TO, '"Doe, John" <john@x.com>, jane@y.com')
        >>> [a.address for a in builder.to]
        ['john@x.com', 'jane@y.com']
    """

    def __init__(self, *, reader: FileReader | None = None) -> None:
        self._reader: FileReader = reader if reader is not None else LocalFileReader()
        self._sender: MailAddress | None = None
        self._subject = ""
        self._text_body = ""
        self._html_body = ""
        self._recipients: dict[RecipientRole, list[MailAddress]] = {role: [] for role in RecipientRole}
        self._attachments: list[Attachment] = []
        self._images: list[EmbeddedImage] = []
        self._finalize_count = 0

    # ------------------------------------------------------------------
    # Scalar properties
    # ------------------------------------------------------------------

    @property
    def sender(self) -> str | None:
        """Envelope sender address, rendered as the ``Sender`` header."""
        return self._sender.address if self._sender is not None else None

    @sender.setter
    def sender(self, value: str | None) -> None:
        self._sender = parse_address(value) if value else None

    @property
    def subject(self) -> str:
        """Message subject, possibly empty."""
        return self._subject

    @subject.setter
    def subject(self, value: str | None) -> None:
        self._subject = value or ""

    @property
    def text_body(self) -> str:
        """Plain-text body."""
        return self._text_body

    @text_body.setter
    def text_body(self, value: str | None) -> None:
        self._text_body = value or ""

    @property
    def html_body(self) -> str:
        """HTML body.

        Assigning replaces the whole body, including ``<img>`` references
        written by :meth:`append_embedded_image`.
        """
        return self._html_body

    @html_body.setter
    def html_body(self, value: str | None) -> None:
        self._html_body = value or ""

    # ------------------------------------------------------------------
    # Body mutators
    # ------------------------------------------------------------------

    def append_text(self, content: str) -> MessageBuilder:
        """Append *content* to the text body, without separator."""
        self._text_body += content
        return self

    def append_html(self, content: str) -> MessageBuilder:
        """Append *content* to the HTML body, without separator."""
        self._html_body += content
        return self

    def append_text_from_file(self, path: str | Path, encoding: str = "utf-8") -> MessageBuilder:
        """Append the whole content of a text file to the text body.

        Raises:
            MailIOError: If the file cannot be read or decoded.
        """
        self._text_body += self._reader.read_text(path, encoding)
        return self

    def append_html_from_file(self, path: str | Path, encoding: str = "utf-8") -> MessageBuilder:
        """Append the whole content of a file to the HTML body.

        Raises:
            MailIOError: If the file cannot be read or decoded.
        """
        self._html_body += self._reader.read_text(path, encoding)
        return self

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    def recipients(self, role: RecipientRole) -> tuple[MailAddress, ...]:
        """Return the address list for *role*."""
        return tuple(self._recipients[RecipientRole(role)])

    @property
    def to(self) -> tuple[MailAddress, ...]:
        return self.recipients(RecipientRole.TO)

    @property
    def cc(self) -> tuple[MailAddress, ...]:
        return self.recipients(RecipientRole.CC)

    @property
    def bcc(self) -> tuple[MailAddress, ...]:
        return self.recipients(RecipientRole.BCC)

    @property
    def reply_to(self) -> tuple[MailAddress, ...]:
        return self.recipients(RecipientRole.REPLY_TO)

    @property
    def from_addresses(self) -> tuple[MailAddress, ...]:
        return self.recipients(RecipientRole.FROM)

    def add_recipient(self, role: RecipientRole, email: str, name: str | None = None) -> MessageBuilder:
        """Append one address to the list for *role*.

        Raises:
            AddressParseError: If *email* is not a valid address.
        """
        self._recipients[RecipientRole(role)].append(make_address(email, name))
        return self

    def add_to(self, email: str, name: str | None = None) -> MessageBuilder:
        return self.add_recipient(RecipientRole.TO, email, name)

    def add_cc(self, email: str, name: str | None = None) -> MessageBuilder:
        return self.add_recipient(RecipientRole.CC, email, name)

    def add_bcc(self, email: str, name: str | None = None) -> MessageBuilder:
        return self.add_recipient(RecipientRole.BCC, email, name)

    def add_reply_to(self, email: str, name: str | None = None) -> MessageBuilder:
        return self.add_recipient(RecipientRole.REPLY_TO, email, name)

    def add_from(self, email: str, name: str | None = None) -> MessageBuilder:
        return self.add_recipient(RecipientRole.FROM, email, name)

    def set_recipients(self, role: RecipientRole, addresses: str | None) -> MessageBuilder:
        """Replace the list for *role* with a parsed comma-separated list.

        For ``FROM`` and ``REPLY_TO`` only the first parsed entry is kept.
        Blank input empties the list.

        Raises:
            AddressParseError: If any entry is malformed. The current list
                is left unchanged.
        """
        role = RecipientRole(role)
        parsed = parse_address_list(addresses)
        if role in _SINGLE_ADDRESS_ROLES and len(parsed) > 1:
            log.debug("Keeping only the first of %d %s addresses", len(parsed), role.value)
            parsed = parsed[:1]
        self._recipients[role] = parsed
        return self

    def set_from(self, addresses: str | None) -> MessageBuilder:
        return self.set_recipients(RecipientRole.FROM, addresses)

    def set_reply_to(self, addresses: str | None) -> MessageBuilder:
        return self.set_recipients(RecipientRole.REPLY_TO, addresses)

    def clear_recipients(self, role: RecipientRole) -> MessageBuilder:
        """Empty the list for *role*."""
        self._recipients[RecipientRole(role)].clear()
        return self

    def clear_to(self) -> MessageBuilder:
        return self.clear_recipients(RecipientRole.TO)

    def clear_cc(self) -> MessageBuilder:
        return self.clear_recipients(RecipientRole.CC)

    def clear_bcc(self) -> MessageBuilder:
        return self.clear_recipients(RecipientRole.BCC)

    @property
    def envelope_sender(self) -> str | None:
        """Address used for ``MAIL FROM``: the sender, else the first From."""
        if self._sender is not None:
            return self._sender.address
        from_list = self._recipients[RecipientRole.FROM]
        return from_list[0].address if from_list else None

    def envelope_recipients(self) -> list[str]:
        """Return To, Cc and Bcc addresses in order, for ``RCPT TO``."""
        return [entry.address for role in _ENVELOPE_ROLES for entry in self._recipients[role]]

    # ------------------------------------------------------------------
    # Attachments and images
    # ------------------------------------------------------------------

    @property
    def attachments(self) -> tuple[Attachment, ...]:
        return tuple(self._attachments)

    @property
    def embedded_images(self) -> tuple[EmbeddedImage, ...]:
        return tuple(self._images)

    def add_attachment(self, path: str | Path) -> MessageBuilder:
        """Queue a file attachment. The file is read at finalize time."""
        self._attachments.append(Attachment(Path(path)))
        return self

    def add_embedded_image(self, path: str | Path) -> MessageBuilder:
        """Queue an image whose reference is appended at finalize time."""
        self._images.append(EmbeddedImage(Path(path), generate_content_id(), ImagePlacement.TRAILING))
        return self

    def append_embedded_image(self, path: str | Path) -> MessageBuilder:
        """Queue an image and append its reference to the HTML body now."""
        image = EmbeddedImage(Path(path), generate_content_id(), ImagePlacement.INLINE)
        self._images.append(image)
        self._html_body += image.reference
        return self

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    @property
    def is_finalized(self) -> bool:
        """True once :meth:`finalize` has run at least once."""
        return self._finalize_count > 0

    def finalize(self) -> EmailMessage:
        """Append trailing image references and assemble the MIME message.

        All files are read before the HTML body is touched, so a read error
        leaves the builder unchanged.

        Returns:
            The assembled message.

        Raises:
            MailIOError: If an attachment or image file cannot be read.
        """
        image_data = [(image, self._reader.read_bytes(image.path)) for image in self._images]
        attachment_data = [(item, self._reader.read_bytes(item.path)) for item in self._attachments]

        for image in self._images:
            if image.placement is ImagePlacement.TRAILING:
                self._html_body += image.reference
        self._finalize_count += 1

        message = EmailMessage()
        self._apply_headers(message)
        self._apply_body(message, image_data)
        for attachment, data in attachment_data:
            maintype, subtype = _guess_mime_type(attachment.path)
            message.add_attachment(
                data,
                maintype=maintype,
                subtype=subtype,
                filename=attachment.path.name,
            )

        log.debug(
            "Finalized message: %d recipient(s), %d attachment(s), %d image(s)",
            len(self.envelope_recipients()),
            len(attachment_data),
            len(image_data),
        )
        return message

    def _apply_headers(self, message: EmailMessage) -> None:
        from_list = self._recipients[RecipientRole.FROM]
        if from_list:
            message["From"] = _header_value(from_list)
            if self._sender is not None:
                message["Sender"] = self._sender.to_header()
        elif self._sender is not None:
            message["From"] = self._sender.to_header()

        for role in (RecipientRole.TO, RecipientRole.CC, RecipientRole.BCC, RecipientRole.REPLY_TO):
            entries = self._recipients[role]
            if entries:
                message[_HEADERS[role]] = _header_value(entries)

        message["Subject"] = self._subject
        message["Date"] = formatdate(localtime=True)
        sender = self.envelope_sender
        domain = sender.rpartition("@")[2] if sender else _CONTENT_ID_DOMAIN
        message["Message-ID"] = make_msgid(domain=domain)

    def _apply_body(self, message: EmailMessage, image_data: Sequence[tuple[EmbeddedImage, bytes]]) -> None:
        """Build text, HTML and related image parts.

        ``EmailMessage`` collapses single-child levels, so the result is
        ``mixed(alternative(text, related(html, images)), attachments)`` at
        most.
        """
        if not self._html_body:
            message.set_content(self._text_body)
            # Images whose reference was overwritten still travel, as inline parts.
            for image, data in image_data:
                maintype, subtype = _guess_mime_type(image.path)
                message.add_attachment(
                    data,
                    maintype=maintype,
                    subtype=subtype,
                    filename=image.path.name,
                    disposition="inline",
                    cid=f"<{image.content_id}>",
                )
            return

        if self._text_body:
            message.set_content(self._text_body)
            message.add_alternative(self._html_body, subtype="html")
            html_part = message.get_payload()[-1]
        else:
            message.set_content(self._html_body, subtype="html")
            html_part = message

        for image, data in image_data:
            maintype, subtype = _guess_mime_type(image.path)
            html_part.add_related(
                data,
                maintype=maintype,
                subtype=subtype,
                filename=image.path.name,
                disposition="inline",
                cid=f"<{image.content_id}>",
            )


def _header_value(entries: Sequence[MailAddress]) -> tuple[object, ...]:
    return tuple(entry.to_header() for entry in entries)


__all__ = [
    "Attachment",
    "EmbeddedImage",
    "ImagePlacement",
    "MessageBuilder",
    "RecipientRole",
    "generate_content_id",
]
