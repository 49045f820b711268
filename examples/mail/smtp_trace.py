#!/usr/bin/env python3
"""Send a message with the SMTP dialogue logged at TRACE level.

Setup:
    1. Go to https://ethereal.email and create a free account
    2. Set environment variables:
       export ETHEREAL_USER="your-user@ethereal.email"
       export ETHEREAL_PASS="your-password"

Usage:
    python examples/mail/smtp_trace.py
"""

from __future__ import annotations

import os
import sys

from maillib import MailSender, SecurityMode
from maillib.logging import init_logging

ETHEREAL_HOST = "smtp.ethereal.email"
ETHEREAL_PORT = 587


def main() -> None:
    """Send one message over STARTTLS with TRACE logging and a trace file."""
    user = os.getenv("ETHEREAL_USER")
    password = os.getenv("ETHEREAL_PASS")
    if not user or not password:
        sys.exit("Set ETHEREAL_USER and ETHEREAL_PASS first (see https://ethereal.email)")

    log = init_logging(config={"console": {"level": "TRACE"}})

    sender = MailSender()
    sender.host = ETHEREAL_HOST
    sender.port = ETHEREAL_PORT
    sender.security = SecurityMode.STARTTLS
    sender.username = user
    sender.password = password
    sender.trace_path = "smtp-trace.log"

    sender.set_from(user)
    sender.add_to(user)
    sender.subject = "maillib TRACE demo"
    sender.append_text("Sent with the SMTP dialogue traced.")

    result = sender.send()
    if result:
        log.success("Delivered", states=" -> ".join(state.value for state in result.history))
    else:
        log.error("Delivery failed at %s: %s", result.stage, result.error)
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - manual example
    main()
