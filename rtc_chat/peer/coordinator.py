"""Negotiation coordinator: drives the offer/answer/ICE exchange.

The coordinator owns the ``Session`` and is the only code that mutates it.
Everything that can change negotiation state arrives as an event on one
queue and is handled to completion, one event at a time, by a single task:

- transport events (decoded envelopes from the relay),
- peer connection events (``negotiationneeded``, ``icecandidate``,
  ``signalingstatechange``).

Peer connection callbacks only enqueue. Because each handler awaits its
peer connection steps before the next event is taken, a remote ICE candidate
can never observe a half-applied SDP exchange, and inbound envelopes are
processed strictly in delivery order.

Negotiation gate
----------------

``NegotiationState`` is ``IDLE`` or ``NEGOTIATING``. A ``negotiationneeded``
event while ``NEGOTIATING`` is ignored, which keeps a peer from producing a
second offer while its first one is in flight. The gate reopens when:

- a remote answer has been applied, or a local answer has been sent;
- a ``signalingstatechange`` reports the connection back in ``stable``;
- ``reset_negotiation()`` is called after a failed round.

A failed step leaves the state where it is; nothing is retried.

Every submitted event resolves to a ``StepResult`` so callers can see
failures without scraping the log.
"""

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Optional, Union

from loguru import logger

from rtc_chat.config import DEFAULT_CHANNEL_LABEL
from rtc_chat.exceptions import NegotiationError, TransportError
from rtc_chat.peer.data_channel import DataChannelManager
from rtc_chat.peer.facade import (
    EVENT_ICE_CANDIDATE,
    EVENT_NEGOTIATION_NEEDED,
    EVENT_SIGNALING_STATE_CHANGE,
    SIGNALING_STABLE,
)
from rtc_chat.peer.state import NegotiationState, Session
from rtc_chat.protocol import (
    SDP_OFFER,
    Candidate,
    IceCandidateSignal,
    JoinedRoom,
    SdpSignal,
    SessionDescription,
    SignalEnvelope,
    SignalFromClient,
    SignalToClient,
    UserHere,
)
from rtc_chat.signaling.transport import (
    Connected,
    ConnectionFailed,
    DecodeFailed,
    Disconnected,
    EnvelopeReceived,
    TransportEvent,
)


@dataclass
class NegotiationNeeded:
    pass


@dataclass
class LocalCandidate:
    candidate: Optional[Candidate]


@dataclass
class SignalingStateChanged:
    pass


@dataclass
class Inbound:
    envelope: SignalEnvelope


@dataclass
class ResetNegotiation:
    pass


CoordinatorEvent = Union[
    NegotiationNeeded, LocalCandidate, SignalingStateChanged, Inbound, ResetNegotiation
]


@dataclass
class StepResult:
    """Outcome of handling one coordinator event.

    Attributes:
        event: Name of the handled event.
        ok: False if a step failed.
        error: The failure, usually a ``NegotiationError``.
    """

    event: str
    ok: bool = True
    error: Optional[Exception] = None


class NegotiationCoordinator:
    """Single-owner state machine for peer connection negotiation.

    Attributes:
        session: The negotiation state this coordinator owns.
        data_channels: Receives the chat data channel on ``UserHere``.
        channel_label: Data channel label used when no room is known.
    """

    def __init__(
        self,
        session: Session,
        data_channels: DataChannelManager,
        channel_label: str = DEFAULT_CHANNEL_LABEL,
    ):
        self.session = session
        self.data_channels = data_channels
        self.channel_label = channel_label
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> NegotiationState:
        return self.session.negotiation_state

    # =========================================================================
    # Event intake
    # =========================================================================

    def attach(self) -> None:
        """Route the peer connection's events into the coordinator queue."""
        pc = self.session.peer_connection
        pc.on(EVENT_NEGOTIATION_NEEDED, lambda: self.submit(NegotiationNeeded()))
        pc.on(
            EVENT_ICE_CANDIDATE,
            lambda candidate=None: self.submit(LocalCandidate(candidate)),
        )
        pc.on(EVENT_SIGNALING_STATE_CHANGE, lambda: self.submit(SignalingStateChanged()))

    def on_transport_event(self, event: TransportEvent) -> None:
        """Transport callback: queue envelopes, log connection changes."""
        if isinstance(event, EnvelopeReceived):
            self.submit(Inbound(event.envelope))
        elif isinstance(event, DecodeFailed):
            # Dropped frames never reach the session.
            logger.warning(f"Ignoring malformed signaling frame: {event.error}")
        elif isinstance(event, Connected):
            logger.info(f"Signaling connected to {event.url}")
        elif isinstance(event, Disconnected):
            logger.warning(f"Signaling disconnected: {event.reason}")
        elif isinstance(event, ConnectionFailed):
            logger.error(f"Signaling connection to {event.url} failed: {event.error}")

    def submit(self, event: CoordinatorEvent) -> asyncio.Future:
        """Queue an event for the coordinator task.

        Returns:
            Future resolving to the event's ``StepResult``.
        """
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((event, future))
        return future

    def reset_negotiation(self) -> asyncio.Future:
        """Reopen the negotiation gate after a stalled round."""
        return self.submit(ResetNegotiation())

    # =========================================================================
    # Task lifecycle
    # =========================================================================

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        """Handle queued events one at a time until cancelled."""
        while True:
            event, future = await self._queue.get()
            try:
                result = await self.handle(event)
            except Exception as e:
                logger.exception(f"Unexpected error handling {type(event).__name__}")
                result = StepResult(type(event).__name__, ok=False, error=e)
            finally:
                self._queue.task_done()
            if not future.done():
                future.set_result(result)

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle(self, event: CoordinatorEvent) -> StepResult:
        """Handle one event to completion.

        Only the coordinator task should call this, except in tests that
        drive the state machine directly.
        """
        name = type(event).__name__
        try:
            if isinstance(event, NegotiationNeeded):
                await self._on_negotiation_needed()
            elif isinstance(event, LocalCandidate):
                await self._on_local_candidate(event.candidate)
            elif isinstance(event, SignalingStateChanged):
                self._on_signaling_state_change()
            elif isinstance(event, Inbound):
                name = type(event.envelope).__name__
                await self._on_envelope(event.envelope)
            elif isinstance(event, ResetNegotiation):
                logger.info("Negotiation state reset")
                self.session.negotiation_state = NegotiationState.IDLE
            else:
                raise TypeError(f"Unknown coordinator event: {event!r}")
        except NegotiationError as e:
            logger.error(f"Negotiation step failed while handling {name}: {e}")
            return StepResult(name, ok=False, error=e)
        return StepResult(name)

    async def _on_envelope(self, envelope: SignalEnvelope) -> None:
        if isinstance(envelope, JoinedRoom):
            self._on_joined_room(envelope.room.room)
        elif isinstance(envelope, SignalToClient):
            content = envelope.content
            if isinstance(content, UserHere):
                self._on_user_here(content.channel_id)
            elif isinstance(content, IceCandidateSignal):
                await self._on_remote_candidate(content.candidate)
            elif isinstance(content, SdpSignal):
                await self._on_remote_description(content.description)
        else:
            logger.debug(f"Ignoring inbound {type(envelope).__name__}")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _call(self, operation: str, func, *args):
        """Await a peer connection operation, wrapping any failure."""
        try:
            return await func(*args)
        except Exception as e:
            raise NegotiationError(operation, e) from e

    async def _send(self, operation: str, envelope: SignalEnvelope) -> None:
        if not await self.session.transport.send(envelope):
            raise NegotiationError(
                operation, TransportError("signaling channel rejected the frame")
            )

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _on_negotiation_needed(self) -> None:
        if self.session.negotiation_state is NegotiationState.NEGOTIATING:
            logger.debug("Negotiation already in progress, ignoring negotiation-needed")
            return

        self.session.negotiation_state = NegotiationState.NEGOTIATING
        pc = self.session.peer_connection

        logger.info("Negotiation needed: creating offer")
        offer = await self._call("create_offer", pc.create_offer)

        logger.info("Negotiation needed: setting local description")
        await self._call("set_local_description", pc.set_local_description, offer)

        local = pc.local_description() or offer
        await self._send("send_offer", SignalFromClient(SdpSignal(local)))
        logger.info("Offer sent to signaling server")

    async def _on_remote_description(self, description: SessionDescription) -> None:
        pc = self.session.peer_connection

        logger.info(f"Handling SDP: applying remote {description.sdp_type}")
        await self._call("set_remote_description", pc.set_remote_description, description)

        await self._flush_candidates()

        if description.sdp_type == SDP_OFFER:
            logger.info("Handling SDP: creating answer")
            answer = await self._call("create_answer", pc.create_answer)
            await self._call("set_local_description", pc.set_local_description, answer)

            local = pc.local_description() or answer
            await self._send("send_answer", SignalFromClient(SdpSignal(local)))
            logger.info("Answer sent to signaling server")

        # Either side of the round is complete at this point.
        self.session.negotiation_state = NegotiationState.IDLE

    async def _flush_candidates(self) -> None:
        pending = self.session.candidates.flush()
        if not pending:
            return
        logger.info(f"Applying {len(pending)} buffered ICE candidate(s)")
        pc = self.session.peer_connection
        for candidate in pending:
            try:
                await self._call("add_ice_candidate", pc.add_ice_candidate, candidate)
            except NegotiationError as e:
                logger.error(f"Could not apply buffered ICE candidate: {e}")

    async def _on_remote_candidate(self, candidate: Candidate) -> None:
        buffer = self.session.candidates
        pc = self.session.peer_connection
        if pc.remote_description() is None and not buffer.flushed:
            buffer.push(candidate)
            logger.debug(f"Buffered remote ICE candidate ({len(buffer)} pending)")
            return
        await self._call("add_ice_candidate", pc.add_ice_candidate, candidate)

    async def _on_local_candidate(self, candidate: Optional[Candidate]) -> None:
        if candidate is None or not candidate.candidate:
            logger.debug("Local ICE gathering complete")
            return
        await self._send(
            "send_ice_candidate", SignalFromClient(IceCandidateSignal(candidate))
        )
        logger.debug("Sent local ICE candidate")

    def _on_signaling_state_change(self) -> None:
        signaling_state = self.session.peer_connection.signaling_state()
        if signaling_state == SIGNALING_STABLE:
            self.session.negotiation_state = NegotiationState.IDLE
        else:
            self.session.negotiation_state = NegotiationState.NEGOTIATING
        logger.debug(
            f"Signaling state {signaling_state}: negotiation {self.session.negotiation_state.value}"
        )

    def _on_joined_room(self, room: str) -> None:
        logger.info(f"Joined room {room}")
        self.session.room = room

    def _on_user_here(self, channel_id: int) -> None:
        if self.session.channel_established:
            logger.debug(f"Data channel already established, ignoring UserHere({channel_id})")
            return

        label = self.session.room
        if label is None:
            logger.warning(
                f"UserHere received before joining a room, using label '{self.channel_label}'"
            )
            label = self.channel_label

        try:
            channel = self.session.peer_connection.create_data_channel(
                label, negotiated=True, id=channel_id
            )
        except Exception as e:
            raise NegotiationError("create_data_channel", e) from e

        self.data_channels.attach(channel)
        self.session.channel_established = True
        logger.info(f"Remote peer is here, negotiated data channel {channel_id}")
