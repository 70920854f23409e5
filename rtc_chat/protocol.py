"""Signaling protocol definitions for rtc-chat.

This module defines the envelopes exchanged between a chat peer and the relay
server over the signaling websocket. The relay only bootstraps the peer
connection; chat text itself travels over the negotiated data channel and is
not part of this protocol.

Wire Format
-----------

One JSON object per websocket message. Every object carries a ``type`` field
naming the variant; the remaining fields depend on that tag.

**NewUser** (peer → relay, once at connect)::

    {"type": "NewUser", "participant": {"name": "alice", "id": "3f2a..."}}

**JoinedRoom** (relay → peer)::

    {"type": "JoinedRoom", "room": {"room": "room-1a2b3c"}}

**SignalFromClient** / **SignalToClient** wrap a signaling message. A peer
always sends ``SignalFromClient``; the relay forwards the content to the other
room member as ``SignalToClient``::

    {"type": "SignalFromClient", "content": <signaling message>}

Signaling messages:

**UserHere** (relay → peer): the other peer is present, ``message`` is the
shared id of the negotiated data channel (0-65535)::

    {"type": "UserHere", "message": 7}

**ICECandidate**::

    {"type": "ICECandidate",
     "message": {"candidate": "candidate:1 1 udp ...", "sdp_mid": "0",
                 "sdp_m_line_index": 0}}

**SDP**::

    {"type": "SDP", "message": {"sdp_type": "offer", "sdp": "v=0\\r\\n..."}}

Decoding Rules
--------------

- Unknown tags, missing fields and ill-typed fields raise
  ``ProtocolDecodeError``; callers drop the frame and carry on.
- ``sdp_type`` must be ``offer`` or ``answer``.
- The ``UserHere`` channel id and ``sdp_m_line_index`` must be integers in
  the u16 range.
- Frames nested too deeply to parse are rejected like any other bad JSON.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from rtc_chat.exceptions import ProtocolDecodeError

# Envelope tags
MSG_NEW_USER = "NewUser"
MSG_JOINED_ROOM = "JoinedRoom"
MSG_SIGNAL_FROM_CLIENT = "SignalFromClient"
MSG_SIGNAL_TO_CLIENT = "SignalToClient"

# Signaling message tags
MSG_USER_HERE = "UserHere"
MSG_ICE_CANDIDATE = "ICECandidate"
MSG_SDP = "SDP"

SDP_OFFER = "offer"
SDP_ANSWER = "answer"
SDP_TYPES = (SDP_OFFER, SDP_ANSWER)

MAX_CHANNEL_ID = 65535
MAX_M_LINE_INDEX = 65535


def _require(data: dict, key: str, expected: Union[type, tuple], what: str) -> Any:
    """Fetch a required field from a decoded JSON object and check its type."""
    if key not in data:
        raise ProtocolDecodeError(f"{what}: missing field '{key}'")
    value = data[key]
    # bool is an int subclass, never accept it where a number is expected
    if isinstance(value, bool) and bool not in _as_tuple(expected):
        raise ProtocolDecodeError(f"{what}: field '{key}' has invalid type bool")
    if not isinstance(value, expected):
        raise ProtocolDecodeError(
            f"{what}: field '{key}' has invalid type {type(value).__name__}"
        )
    return value


def _optional(data: dict, key: str, expected: Union[type, tuple], what: str) -> Any:
    if data.get(key) is None:
        return None
    return _require(data, key, expected, what)


def _as_tuple(expected: Union[type, tuple]) -> tuple:
    return expected if isinstance(expected, tuple) else (expected,)


def _as_object(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise ProtocolDecodeError(f"{what}: expected a JSON object")
    return value


@dataclass(frozen=True)
class Participant:
    """Identity a peer announces when it joins the relay.

    Attributes:
        name: Display name chosen by the user.
        id: Unique participant id (generated per connection attempt).
    """

    name: str
    id: str

    def to_dict(self) -> dict:
        return {"name": self.name, "id": self.id}

    @classmethod
    def from_dict(cls, data: Any) -> "Participant":
        data = _as_object(data, "participant")
        return cls(
            name=_require(data, "name", str, "participant"),
            id=_require(data, "id", str, "participant"),
        )


@dataclass(frozen=True)
class Room:
    """Rendezvous namespace assigned by the relay."""

    room: str

    def to_dict(self) -> dict:
        return {"room": self.room}

    @classmethod
    def from_dict(cls, data: Any) -> "Room":
        data = _as_object(data, "room")
        return cls(room=_require(data, "room", str, "room"))


@dataclass(frozen=True)
class Candidate:
    """An ICE candidate descriptor as carried over the relay.

    Attributes:
        candidate: The candidate line, e.g. ``candidate:1 1 udp 2122 ...``.
            An empty string is the end-of-candidates marker.
        sdp_mid: Media stream identification tag the candidate belongs to.
        sdp_m_line_index: Index of the media description in the SDP.
    """

    candidate: str
    sdp_mid: Optional[str] = None
    sdp_m_line_index: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "candidate": self.candidate,
            "sdp_mid": self.sdp_mid,
            "sdp_m_line_index": self.sdp_m_line_index,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Candidate":
        data = _as_object(data, "candidate")
        index = _optional(data, "sdp_m_line_index", int, "candidate")
        if index is not None and not 0 <= index <= MAX_M_LINE_INDEX:
            raise ProtocolDecodeError(f"candidate: sdp_m_line_index out of range: {index}")
        return cls(
            candidate=_require(data, "candidate", str, "candidate"),
            sdp_mid=_optional(data, "sdp_mid", str, "candidate"),
            sdp_m_line_index=index,
        )


@dataclass(frozen=True)
class SessionDescription:
    """An SDP offer or answer.

    Attributes:
        sdp_type: Either ``"offer"`` or ``"answer"``.
        sdp: The raw session description text.
    """

    sdp_type: str
    sdp: str

    def __post_init__(self):
        if self.sdp_type not in SDP_TYPES:
            raise ProtocolDecodeError(f"sdp: unsupported sdp_type '{self.sdp_type}'")

    def to_dict(self) -> dict:
        return {"sdp_type": self.sdp_type, "sdp": self.sdp}

    @classmethod
    def from_dict(cls, data: Any) -> "SessionDescription":
        data = _as_object(data, "sdp")
        return cls(
            sdp_type=_require(data, "sdp_type", str, "sdp"),
            sdp=_require(data, "sdp", str, "sdp"),
        )


# =============================================================================
# Signaling messages
# =============================================================================


@dataclass(frozen=True)
class UserHere:
    """The remote peer is present; ``channel_id`` is the negotiated channel id."""

    channel_id: int

    def to_dict(self) -> dict:
        return {"type": MSG_USER_HERE, "message": self.channel_id}


@dataclass(frozen=True)
class IceCandidateSignal:
    candidate: Candidate

    def to_dict(self) -> dict:
        return {"type": MSG_ICE_CANDIDATE, "message": self.candidate.to_dict()}


@dataclass(frozen=True)
class SdpSignal:
    description: SessionDescription

    def to_dict(self) -> dict:
        return {"type": MSG_SDP, "message": self.description.to_dict()}


SignalingMessage = Union[UserHere, IceCandidateSignal, SdpSignal]


def parse_signaling_message(data: Any) -> SignalingMessage:
    """Decode a signaling message object.

    Args:
        data: Decoded JSON object with a ``type`` field.

    Returns:
        The matching signaling message dataclass.

    Raises:
        ProtocolDecodeError: If the tag is unknown or the payload is invalid.
    """
    data = _as_object(data, "signaling message")
    msg_type = data.get("type")

    if msg_type == MSG_USER_HERE:
        channel_id = _require(data, "message", int, MSG_USER_HERE)
        if not 0 <= channel_id <= MAX_CHANNEL_ID:
            raise ProtocolDecodeError(f"{MSG_USER_HERE}: channel id out of range: {channel_id}")
        return UserHere(channel_id=channel_id)
    elif msg_type == MSG_ICE_CANDIDATE:
        return IceCandidateSignal(Candidate.from_dict(data.get("message")))
    elif msg_type == MSG_SDP:
        return SdpSignal(SessionDescription.from_dict(data.get("message")))
    else:
        raise ProtocolDecodeError(f"Unknown signaling message type: {msg_type!r}")


# =============================================================================
# Envelopes
# =============================================================================


@dataclass(frozen=True)
class NewUser:
    participant: Participant

    def to_dict(self) -> dict:
        return {"type": MSG_NEW_USER, "participant": self.participant.to_dict()}


@dataclass(frozen=True)
class JoinedRoom:
    room: Room

    def to_dict(self) -> dict:
        return {"type": MSG_JOINED_ROOM, "room": self.room.to_dict()}


@dataclass(frozen=True)
class SignalFromClient:
    """A signaling message sent by a peer to the relay."""

    content: SignalingMessage

    def to_dict(self) -> dict:
        return {"type": MSG_SIGNAL_FROM_CLIENT, "content": self.content.to_dict()}


@dataclass(frozen=True)
class SignalToClient:
    """A signaling message delivered by the relay to a peer."""

    content: SignalingMessage

    def to_dict(self) -> dict:
        return {"type": MSG_SIGNAL_TO_CLIENT, "content": self.content.to_dict()}


SignalEnvelope = Union[NewUser, JoinedRoom, SignalFromClient, SignalToClient]


def parse_envelope(data: Any) -> SignalEnvelope:
    """Decode an envelope from an already-parsed JSON value.

    Raises:
        ProtocolDecodeError: If the tag is unknown or the payload is invalid.
    """
    data = _as_object(data, "envelope")
    msg_type = data.get("type")

    if msg_type == MSG_NEW_USER:
        return NewUser(Participant.from_dict(data.get("participant")))
    elif msg_type == MSG_JOINED_ROOM:
        return JoinedRoom(Room.from_dict(data.get("room")))
    elif msg_type == MSG_SIGNAL_FROM_CLIENT:
        return SignalFromClient(parse_signaling_message(data.get("content")))
    elif msg_type == MSG_SIGNAL_TO_CLIENT:
        return SignalToClient(parse_signaling_message(data.get("content")))
    else:
        raise ProtocolDecodeError(f"Unknown envelope type: {msg_type!r}")


def encode_envelope(envelope: SignalEnvelope) -> str:
    """Serialize an envelope to its JSON wire form."""
    return json.dumps(envelope.to_dict())


def decode_envelope(raw: Union[str, bytes]) -> SignalEnvelope:
    """Decode one websocket frame into an envelope.

    Args:
        raw: The frame as received (text or UTF-8 bytes).

    Returns:
        The decoded envelope.

    Raises:
        ProtocolDecodeError: If the frame is not valid JSON or not a valid
            envelope. The original frame is attached as ``raw``.
    """
    text = raw
    try:
        if isinstance(raw, (bytes, bytearray)):
            text = raw.decode("utf-8")
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
        raise ProtocolDecodeError(f"Invalid JSON frame: {e}", raw=text) from e

    try:
        return parse_envelope(data)
    except ProtocolDecodeError as e:
        e.raw = text
        raise
