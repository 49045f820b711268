"""maillib: compose mail messages and deliver them over SMTP.

Examples:
    >>> from maillib import MailSender
    >>> sender = MailSender()
    >>> sender.host = "smtp.example.com"
    >>> _ = sender.add_to("ada@example.com", "Ada").append_text("Hello")
    >>> result = sender.send()  # doctest: +SKIP
    >>> bool(result)  # doctest: +SKIP
    True
"""

from maillib.addresses import MailAddress, parse_address_list
from maillib.builder import Attachment, EmbeddedImage, ImagePlacement, MessageBuilder, RecipientRole
from maillib.dispatcher import DispatchState, Dispatcher, SecurityMode, SendResult, TransportConfig
from maillib.exceptions import (
    AddressParseError,
    AuthenticationError,
    ConfigurationError,
    InvalidStateError,
    MailConnectionError,
    MailError,
    MailIOError,
    MailTransportError,
    SecurityError,
    SubmissionError,
)
from maillib.sender import MailSender
from maillib.ssl import TLSProtocol

__version__ = "0.1.0"

__all__ = [
    "AddressParseError",
    "Attachment",
    "AuthenticationError",
    "ConfigurationError",
    "DispatchState",
    "Dispatcher",
    "EmbeddedImage",
    "ImagePlacement",
    "InvalidStateError",
    "MailAddress",
    "MailConnectionError",
    "MailError",
    "MailIOError",
    "MailSender",
    "MailTransportError",
    "MessageBuilder",
    "RecipientRole",
    "SecurityError",
    "SecurityMode",
    "SendResult",
    "SubmissionError",
    "TLSProtocol",
    "TransportConfig",
    "__version__",
    "parse_address_list",
]
