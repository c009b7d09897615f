"""uxaswire — Addressed, attributed message framing for UxAS bridges."""

__version__ = "0.1.0"

from .protocol import (
    encode, decode, AddressedAttributedMessage, Envelope, MessageAttributes,
    FrameError, MalformedAttributes, MalformedEnvelope, ValidationError,
)
