"""One chat peer: transport, coordinator, data channel and bridge wired together."""

import asyncio
import contextlib
import uuid
from typing import Optional

from loguru import logger

from rtc_chat.chat.bridge import ChatBridge
from rtc_chat.config import Config, get_config
from rtc_chat.peer.coordinator import NegotiationCoordinator
from rtc_chat.peer.data_channel import DataChannelManager
from rtc_chat.peer.facade import AiortcPeerConnection, PeerConnectionFacade
from rtc_chat.peer.state import Session
from rtc_chat.protocol import NewUser, Participant
from rtc_chat.signaling.transport import SignalingTransport


def new_participant(name: str) -> Participant:
    """Build a participant with a fresh id for one connection attempt."""
    return Participant(name=name, id=uuid.uuid4().hex)


class ChatPeer:
    """A chat client process.

    Builds the ``Session`` and the components around it. Peer connection and
    transport default to the aiortc adapter and a websocket transport built
    from ``config``; tests pass their own.

    Attributes:
        participant: Identity announced to the relay.
        bridge: Chat pub/sub the UI subscribes to.
        data_channels: Owner of the chat data channel.
        session: Negotiation state, owned by ``coordinator``.
        coordinator: The negotiation state machine.
    """

    def __init__(
        self,
        participant: Participant,
        config: Optional[Config] = None,
        peer_connection: Optional[PeerConnectionFacade] = None,
        transport: Optional[SignalingTransport] = None,
        bridge: Optional[ChatBridge] = None,
    ):
        config = config if config is not None else get_config()
        self.participant = participant

        self.bridge = bridge if bridge is not None else ChatBridge()
        self.data_channels = DataChannelManager(self.bridge)
        self.bridge.sender = self.data_channels.send

        if peer_connection is None:
            peer_connection = AiortcPeerConnection(config.ice_servers)
        if transport is None:
            transport = SignalingTransport(config.signaling_websocket)

        self.session = Session(peer_connection=peer_connection, transport=transport)
        self.coordinator = NegotiationCoordinator(
            self.session, self.data_channels, channel_label=config.channel_label
        )
        transport.on_event = self.coordinator.on_transport_event
        self.coordinator.attach()

        self._listener: Optional[asyncio.Task] = None

    @property
    def transport(self) -> SignalingTransport:
        return self.session.transport

    async def start(self) -> None:
        """Connect to the relay, announce this participant and start listening.

        Raises:
            TransportError: If the relay cannot be reached.
        """
        await self.transport.connect()
        self.coordinator.start()

        if not await self.transport.send(NewUser(self.participant)):
            logger.error("Could not announce participant to the signaling server")

        self._listener = asyncio.create_task(self.transport.listen())
        logger.info(f"Joined signaling as {self.participant.name}")

    async def wait_closed(self) -> None:
        """Wait until the signaling connection goes away."""
        if self._listener is not None:
            await self._listener

    def send_text(self, text: str) -> bool:
        return self.bridge.outgoing(text)

    async def close(self) -> None:
        """Tear down listener, coordinator, transport and peer connection."""
        if self._listener is not None:
            self._listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener
            self._listener = None
        await self.coordinator.stop()
        await self.transport.close()
        await self.session.peer_connection.close()
        logger.info("Chat peer closed")
