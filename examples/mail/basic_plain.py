"""Plain-text mail composition using :class:`maillib.MessageBuilder`."""

from __future__ import annotations

from maillib import MessageBuilder


def build_plain_message() -> None:
    """Construct a plain-text message and print the RFC822 payload."""
    builder = MessageBuilder()
    builder.set_from("Sender <sender@example.com>")
    builder.add_to("user@example.com")
    builder.subject = "Plain Greetings"
    builder.append_text("Hello from maillib!\n").append_text("This message has no HTML part.")
    print(builder.finalize().as_string())


if __name__ == "__main__":  # pragma: no cover - manual example
    build_plain_message()
