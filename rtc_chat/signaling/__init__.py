"""Signaling for rtc-chat.

This module provides:
- transport: Websocket channel to the relay with decoded envelope events
"""

from rtc_chat.signaling.transport import (
    SignalingTransport,
    TransportEvent,
    Connected,
    ConnectionFailed,
    Disconnected,
    EnvelopeReceived,
    DecodeFailed,
)

__all__ = [
    "SignalingTransport",
    "TransportEvent",
    "Connected",
    "ConnectionFailed",
    "Disconnected",
    "EnvelopeReceived",
    "DecodeFailed",
]
