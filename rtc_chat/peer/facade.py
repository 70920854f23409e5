"""Peer connection primitive used by the negotiation coordinator.

``PeerConnectionFacade`` is the narrow surface the coordinator drives: offer
and answer creation, description mutation, candidate addition, negotiated data
channel creation, and three events:

- ``icecandidate``: a local candidate was discovered (``None`` or an empty
  candidate string marks the end of gathering).
- ``negotiationneeded``: the connection needs an offer/answer round.
- ``signalingstatechange``: ``signaling_state()`` changed.

``AiortcPeerConnection`` implements it on top of ``aiortc.RTCPeerConnection``.
aiortc gathers candidates before ``setLocalDescription`` returns and embeds
them in the SDP, and it never fires ``negotiationneeded`` itself, so the
adapter raises that event when the first data channel is added to a
connection that has no SCTP transport yet.
"""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from aiortc import (
    RTCConfiguration,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp
from loguru import logger

from rtc_chat.protocol import Candidate, SessionDescription

EVENT_ICE_CANDIDATE = "icecandidate"
EVENT_NEGOTIATION_NEEDED = "negotiationneeded"
EVENT_SIGNALING_STATE_CHANGE = "signalingstatechange"

SIGNALING_STABLE = "stable"


class DataChannel(Protocol):
    """The parts of an RTC data channel the chat uses."""

    label: str
    id: Optional[int]
    readyState: str

    def send(self, data: Union[bytes, str]) -> None: ...

    def on(self, event: str, f: Optional[Callable] = None) -> Any: ...


class PeerConnectionFacade(Protocol):
    async def create_offer(self) -> SessionDescription: ...

    async def create_answer(self) -> SessionDescription: ...

    async def set_local_description(self, description: SessionDescription) -> None: ...

    async def set_remote_description(self, description: SessionDescription) -> None: ...

    async def add_ice_candidate(self, candidate: Candidate) -> None: ...

    def local_description(self) -> Optional[SessionDescription]: ...

    def remote_description(self) -> Optional[SessionDescription]: ...

    def signaling_state(self) -> str: ...

    def create_data_channel(
        self, label: str, negotiated: bool = True, id: Optional[int] = None
    ) -> DataChannel: ...

    def on(self, event: str, handler: Callable) -> None: ...

    async def close(self) -> None: ...


def _to_rtc_description(description: SessionDescription) -> RTCSessionDescription:
    return RTCSessionDescription(sdp=description.sdp, type=description.sdp_type)


def _from_rtc_description(
    description: Optional[RTCSessionDescription],
) -> Optional[SessionDescription]:
    if description is None:
        return None
    return SessionDescription(sdp_type=description.type, sdp=description.sdp)


def _to_rtc_candidate(candidate: Candidate) -> RTCIceCandidate:
    """Build an aiortc candidate from a browser style candidate line."""
    line = candidate.candidate
    if line.startswith("candidate:"):
        line = line[len("candidate:") :]
    rtc_candidate = candidate_from_sdp(line)
    rtc_candidate.sdpMid = candidate.sdp_mid
    rtc_candidate.sdpMLineIndex = candidate.sdp_m_line_index
    return rtc_candidate


class AiortcPeerConnection:
    """``PeerConnectionFacade`` backed by ``aiortc.RTCPeerConnection``."""

    def __init__(self, ice_servers: Optional[List[str]] = None):
        """Create the underlying peer connection.

        Args:
            ice_servers: STUN/TURN URLs, e.g. ``["stun:stun.l.google.com:19302"]``.
        """
        if ice_servers:
            configuration = RTCConfiguration(
                iceServers=[RTCIceServer(urls=url) for url in ice_servers]
            )
            logger.info(
                f"Creating RTCPeerConnection with {len(ice_servers)} ICE server(s)"
            )
            self._pc = RTCPeerConnection(configuration=configuration)
        else:
            logger.warning("No ICE servers configured, using default RTCPeerConnection")
            self._pc = RTCPeerConnection()

        self._handlers: Dict[str, List[Callable]] = defaultdict(list)
        self._pc.on("signalingstatechange", self._on_signaling_state_change)
        self._pc.on("icegatheringstatechange", self._on_ice_gathering_state_change)

    def on(self, event: str, handler: Callable) -> None:
        self._handlers[event].append(handler)

    def _emit(self, event: str, *args) -> None:
        for handler in list(self._handlers[event]):
            handler(*args)

    def _on_signaling_state_change(self) -> None:
        logger.debug(f"Signaling state is now {self._pc.signalingState}")
        self._emit(EVENT_SIGNALING_STATE_CHANGE)

    def _on_ice_gathering_state_change(self) -> None:
        logger.debug(f"ICE gathering state is now {self._pc.iceGatheringState}")
        if self._pc.iceGatheringState == "complete":
            # Candidates already travel inside the SDP; only signal the end.
            self._emit(EVENT_ICE_CANDIDATE, None)

    async def create_offer(self) -> SessionDescription:
        return _from_rtc_description(await self._pc.createOffer())

    async def create_answer(self) -> SessionDescription:
        return _from_rtc_description(await self._pc.createAnswer())

    async def set_local_description(self, description: SessionDescription) -> None:
        await self._pc.setLocalDescription(_to_rtc_description(description))

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(_to_rtc_description(description))

    async def add_ice_candidate(self, candidate: Candidate) -> None:
        if not candidate.candidate:
            # End-of-candidates marker, nothing to add.
            return
        await self._pc.addIceCandidate(_to_rtc_candidate(candidate))

    def local_description(self) -> Optional[SessionDescription]:
        return _from_rtc_description(self._pc.localDescription)

    def remote_description(self) -> Optional[SessionDescription]:
        return _from_rtc_description(self._pc.remoteDescription)

    def signaling_state(self) -> str:
        return self._pc.signalingState

    def create_data_channel(
        self, label: str, negotiated: bool = True, id: Optional[int] = None
    ) -> DataChannel:
        needs_negotiation = self._pc.sctp is None
        channel = self._pc.createDataChannel(label, negotiated=negotiated, id=id)
        if needs_negotiation:
            asyncio.get_running_loop().call_soon(self._emit, EVENT_NEGOTIATION_NEEDED)
        return channel

    async def close(self) -> None:
        await self._pc.close()
