"""Peer connection negotiation for rtc-chat.

This module provides:
- facade: Peer connection protocol and the aiortc-backed implementation
- candidate_buffer: Remote ICE candidates held until a remote description exists
- coordinator: Offer/answer/ICE state machine
- data_channel: Owner of the negotiated chat data channel
- state: Session and NegotiationState
"""

from rtc_chat.peer.candidate_buffer import CandidateBuffer
from rtc_chat.peer.coordinator import NegotiationCoordinator, StepResult
from rtc_chat.peer.data_channel import DataChannelManager
from rtc_chat.peer.facade import AiortcPeerConnection, PeerConnectionFacade
from rtc_chat.peer.state import NegotiationState, Session

__all__ = [
    "CandidateBuffer",
    "NegotiationCoordinator",
    "StepResult",
    "DataChannelManager",
    "AiortcPeerConnection",
    "PeerConnectionFacade",
    "NegotiationState",
    "Session",
]
