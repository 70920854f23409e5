"""Exception types for rtc-chat.

All errors raised by the package derive from ``RTCChatError`` so callers can
catch the whole family at the edge (CLI, relay handler) without hiding
programming errors.
"""

from typing import Optional


class RTCChatError(Exception):
    """Base class for rtc-chat errors."""


class TransportError(RTCChatError):
    """The signaling connection could not be opened or used."""


class ProtocolDecodeError(RTCChatError, ValueError):
    """A signaling frame could not be decoded into an envelope.

    Attributes:
        raw: The offending frame, if available.
    """

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class NegotiationError(RTCChatError):
    """A peer connection step failed during negotiation.

    Attributes:
        operation: Name of the failed peer connection operation.
        cause: The underlying exception.
    """

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"{operation} failed: {cause!r}")
        self.operation = operation
        self.cause = cause
