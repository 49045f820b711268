"""Transport implementations for mail delivery.

Available transports:
    - SMTPTransport: SMTP over :mod:`smtplib` (sync), with optional protocol trace
"""

from maillib.transports.smtp import ProtocolTrace, SMTPConnection, SMTPTransport

__all__ = [
    "ProtocolTrace",
    "SMTPConnection",
    "SMTPTransport",
]
