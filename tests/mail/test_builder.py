"""Tests for the message builder fluent API."""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

import pytest

# pylint: disable=redefined-outer-name
from maillib.addresses import MailAddress
from maillib.builder import ImagePlacement, MessageBuilder, RecipientRole, generate_content_id
from maillib.exceptions import AddressParseError, MailIOError

_CID_PATTERN = re.compile(r'cid:([^"]+)"')


@pytest.fixture
def builder() -> MessageBuilder:
    """A builder with one recipient."""
    return MessageBuilder().add_to("receiver@example.com")


class TestAddresses:
    """Recipient list handling."""

    def test_set_recipients_splits_on_top_level_commas_only(self, builder: MessageBuilder) -> None:
        builder.set_recipients(RecipientRole.TO, '"Doe, John" <a@x.com>, b@y.com')
        assert builder.to == (MailAddress("a@x.com", "Doe, John"), MailAddress("b@y.com"))

    def test_set_recipients_replaces_list(self, builder: MessageBuilder) -> None:
        builder.set_recipients(RecipientRole.CC, "c@z.com")
        builder.set_recipients(RecipientRole.CC, "d@z.com, e@z.com")
        assert [a.address for a in builder.cc] == ["d@z.com", "e@z.com"]

    def test_set_recipients_failure_keeps_previous_list(self, builder: MessageBuilder) -> None:
        with pytest.raises(AddressParseError):
            builder.set_recipients(RecipientRole.TO, "good@x.com, bad-address")
        assert [a.address for a in builder.to] == ["receiver@example.com"]

    def test_empty_text_clears_list(self, builder: MessageBuilder) -> None:
        builder.set_recipients(RecipientRole.TO, "")
        assert builder.to == ()

    def test_set_from_keeps_first_entry(self, builder: MessageBuilder) -> None:
        builder.set_from("First <first@x.com>, second@y.com")
        assert builder.from_addresses == (MailAddress("first@x.com", "First"),)

    def test_set_reply_to_keeps_first_entry(self, builder: MessageBuilder) -> None:
        builder.set_reply_to("help@x.com, other@y.com")
        assert [a.address for a in builder.reply_to] == ["help@x.com"]

    def test_set_from_failure_keeps_previous_value(self, builder: MessageBuilder) -> None:
        builder.set_from("keep@x.com")
        with pytest.raises(AddressParseError):
            builder.set_from('"Broken <x@y.com>')
        assert [a.address for a in builder.from_addresses] == ["keep@x.com"]

    def test_add_recipient_rejects_invalid(self, builder: MessageBuilder) -> None:
        with pytest.raises(AddressParseError):
            builder.add_cc("nope")
        assert builder.cc == ()

    def test_duplicates_are_kept_in_order(self) -> None:
        builder = MessageBuilder().add_to("a@x.com").add_bcc("b@x.com").add_cc("a@x.com")
        assert builder.envelope_recipients() == ["a@x.com", "a@x.com", "b@x.com"]

    def test_clear_helpers(self, builder: MessageBuilder) -> None:
        builder.add_cc("c@x.com").add_bcc("b@x.com")
        builder.clear_to().clear_cc().clear_bcc()
        assert builder.envelope_recipients() == []

    def test_recipients_accepts_role_value(self, builder: MessageBuilder) -> None:
        assert builder.recipients("to") == builder.to  # type: ignore[arg-type]

    def test_envelope_sender_prefers_sender(self, builder: MessageBuilder) -> None:
        builder.set_from("author@x.com")
        assert builder.envelope_sender == "author@x.com"
        builder.sender = "Bounces <bounce@x.com>"
        assert builder.sender == "bounce@x.com"
        assert builder.envelope_sender == "bounce@x.com"

    def test_sender_is_validated(self, builder: MessageBuilder) -> None:
        with pytest.raises(AddressParseError):
            builder.sender = "not an address"


class TestBodies:
    """Text and HTML body handling."""

    def test_append_concatenates_without_separator(self, builder: MessageBuilder) -> None:
        builder.append_text("Hel").append_text("lo")
        builder.html_body = "<p>"
        builder.append_html("x</p>")
        assert builder.text_body == "Hello"
        assert builder.html_body == "<p>x</p>"

    def test_append_from_file(self, builder: MessageBuilder, text_file: Callable[[str, str], Path]) -> None:
        builder.append_text("A:").append_text_from_file(text_file("body.txt", "héllo"))
        builder.append_html_from_file(text_file("body.html", "<b>bold</b>"))
        assert builder.text_body == "A:héllo"
        assert builder.html_body == "<b>bold</b>"

    def test_append_from_missing_file(self, builder: MessageBuilder, tmp_path: Path) -> None:
        with pytest.raises(MailIOError, match="missing.txt"):
            builder.append_text_from_file(tmp_path / "missing.txt")

    def test_append_from_undecodable_file(self, builder: MessageBuilder, tmp_path: Path) -> None:
        path = tmp_path / "latin1.txt"
        path.write_bytes(b"caf\xe9")
        with pytest.raises(MailIOError, match="not valid utf-8"):
            builder.append_text_from_file(path)
        builder.append_text_from_file(path, encoding="latin-1")
        assert builder.text_body == "café"


class TestEmbeddedImages:
    """Content-id images, trailing and inline."""

    def test_content_ids_are_unique(self) -> None:
        ids = {generate_content_id() for _ in range(50)}
        assert len(ids) == 50

    def test_append_embedded_image_writes_reference_now(self, builder: MessageBuilder, png_file: Path) -> None:
        builder.html_body = "<p>Hi</p>"
        before = len(builder.html_body)
        builder.append_embedded_image(png_file)

        image = builder.embedded_images[0]
        assert image.placement is ImagePlacement.INLINE
        assert len(builder.html_body) > before
        assert builder.html_body.count(f"cid:{image.content_id}") == 1

    def test_add_embedded_image_leaves_html_untouched(self, builder: MessageBuilder, png_file: Path) -> None:
        builder.html_body = "<p>Hi</p>"
        builder.add_embedded_image(png_file)
        assert builder.html_body == "<p>Hi</p>"
        assert builder.embedded_images[0].placement is ImagePlacement.TRAILING

    def test_finalize_appends_trailing_references_in_order(
        self, builder: MessageBuilder, tmp_path: Path, png_file: Path
    ) -> None:
        second = tmp_path / "second.png"
        second.write_bytes(png_file.read_bytes())
        builder.add_embedded_image(png_file).add_embedded_image(second)
        builder.html_body = "<p>Replaced after queueing</p>"

        builder.finalize()

        expected = [image.content_id for image in builder.embedded_images]
        assert builder.html_body.startswith("<p>Replaced after queueing</p>")
        assert _CID_PATTERN.findall(builder.html_body) == expected

    def test_finalize_twice_duplicates_trailing_references(self, builder: MessageBuilder, png_file: Path) -> None:
        builder.add_embedded_image(png_file)
        builder.finalize()
        builder.finalize()

        content_id = builder.embedded_images[0].content_id
        assert builder.html_body.count(f"cid:{content_id}") == 2

    def test_overwritten_inline_reference_still_ships_image(self, builder: MessageBuilder, png_file: Path) -> None:
        builder.append_embedded_image(png_file)
        builder.html_body = ""
        builder.append_text("plain only")

        message = builder.finalize()

        images = [part for part in message.walk() if part.get_content_type() == "image/png"]
        assert len(images) == 1
        assert images[0]["Content-ID"] == f"<{builder.embedded_images[0].content_id}>"


class TestFinalize:
    """MIME assembly."""

    def test_plain_message(self, builder: MessageBuilder) -> None:
        builder.set_from("sender@example.com")
        builder.subject = "Greetings"
        builder.append_text("Hello")

        message = builder.finalize()

        assert message["From"] == "sender@example.com"
        assert message["To"] == "receiver@example.com"
        assert message["Subject"] == "Greetings"
        assert message["Date"]
        assert message["Message-ID"].endswith("@example.com>")
        assert message.get_content_type() == "text/plain"
        assert message.get_content().strip() == "Hello"
        assert builder.is_finalized

    def test_text_and_html_with_image_and_attachment(
        self, builder: MessageBuilder, png_file: Path, text_file: Callable[[str, str], Path]
    ) -> None:
        builder.append_text("Hello").append_html("<p>Hello</p>").append_embedded_image(png_file)
        builder.add_attachment(text_file("report.csv", "a,b\n1,2\n"))

        message = builder.finalize()

        assert message.get_content_type() == "multipart/mixed"
        alternative, attachment = message.get_payload()
        assert alternative.get_content_type() == "multipart/alternative"
        plain, related = alternative.get_payload()
        assert plain.get_content_type() == "text/plain"
        assert related.get_content_type() == "multipart/related"
        html, image = related.get_payload()
        assert html.get_content_type() == "text/html"
        assert image.get_content_type() == "image/png"
        assert attachment.get_filename() == "report.csv"
        assert attachment.get_content_type() == "text/csv"

    def test_html_only_collapses_alternative(self, builder: MessageBuilder, png_file: Path) -> None:
        builder.append_html("<p>Only html</p>").add_embedded_image(png_file)

        message = builder.finalize()

        assert message.get_content_type() == "multipart/related"
        assert [part.get_content_type() for part in message.iter_parts()] == ["text/html", "image/png"]

    def test_unknown_extension_is_octet_stream(self, builder: MessageBuilder, tmp_path: Path) -> None:
        blob = tmp_path / "data.unknownext"
        blob.write_bytes(b"\x00\x01")
        builder.append_text("see attached").add_attachment(blob)

        attachment = list(builder.finalize().iter_attachments())[0]
        assert attachment.get_content_type() == "application/octet-stream"

    def test_sender_header_only_with_from(self, builder: MessageBuilder) -> None:
        builder.sender = "bounce@example.com"
        assert builder.finalize()["From"] == "bounce@example.com"

        other = MessageBuilder().add_to("r@example.com").set_from("author@example.com")
        other.sender = "bounce@example.com"
        message = other.finalize()
        assert message["From"] == "author@example.com"
        assert message["Sender"] == "bounce@example.com"

    def test_bcc_and_reply_to_headers(self, builder: MessageBuilder) -> None:
        builder.add_bcc("hidden@example.com").add_reply_to("help@example.com", "Help Desk")
        message = builder.finalize()
        assert message["Bcc"] == "hidden@example.com"
        assert message["Reply-To"] == "Help Desk <help@example.com>"

    def test_missing_attachment_fails_at_finalize(self, builder: MessageBuilder, tmp_path: Path) -> None:
        builder.add_attachment(tmp_path / "absent.pdf")
        builder.add_embedded_image(tmp_path / "absent.png")
        with pytest.raises(MailIOError):
            builder.finalize()
        assert not builder.is_finalized
        assert "cid:" not in builder.html_body
