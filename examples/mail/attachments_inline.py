"""HTML mail with an inline image and a file attachment.

Usage:
    python examples/mail/attachments_inline.py logo.png report.pdf
"""

from __future__ import annotations

import sys

from maillib import MessageBuilder


def build_rich_message(image: str, attachment: str) -> None:
    """Embed *image* in the HTML body and attach *attachment*."""
    builder = MessageBuilder()
    builder.set_from("reports@example.com")
    builder.set_recipients("to", "Ada <ada@example.com>, grace@example.com")
    builder.subject = "Monthly report"
    builder.append_text("The report is attached.")
    builder.append_html("<h1>Monthly report</h1><p>Our logo:</p>")
    builder.append_embedded_image(image)
    builder.append_html("<p>Details are in the attachment.</p>")
    builder.add_attachment(attachment)
    print(builder.finalize().as_string()[:2000])


if __name__ == "__main__":  # pragma: no cover - manual example
    if len(sys.argv) != 3:
        sys.exit(__doc__)
    build_rich_message(sys.argv[1], sys.argv[2])
