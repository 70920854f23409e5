"""Per-process negotiation state."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from rtc_chat.peer.candidate_buffer import CandidateBuffer

if TYPE_CHECKING:
    from rtc_chat.peer.facade import PeerConnectionFacade
    from rtc_chat.signaling.transport import SignalingTransport


class NegotiationState(str, Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"


@dataclass
class Session:
    """Everything the negotiation coordinator owns for one chat peer.

    Only the coordinator task mutates a Session; other code submits events to
    the coordinator instead of touching these fields.

    Attributes:
        peer_connection: The peer connection being negotiated.
        transport: Signaling channel used for outbound envelopes.
        room: Room assigned by the relay, once ``JoinedRoom`` arrives.
        channel_established: Whether the chat data channel was created.
        candidates: Remote candidates waiting for a remote description.
        negotiation_state: Offer gate, see ``NegotiationCoordinator``.
    """

    peer_connection: "PeerConnectionFacade"
    transport: "SignalingTransport"
    room: Optional[str] = None
    channel_established: bool = False
    candidates: CandidateBuffer = field(default_factory=CandidateBuffer)
    negotiation_state: NegotiationState = NegotiationState.IDLE
