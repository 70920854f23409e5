"""WebSocket signaling relay for rtc-chat peers.

The relay pairs participants into two-seat rooms and passes signaling
messages between the two members. It never looks inside SDP or candidates.

Flow:
1. A peer connects and sends ``NewUser``. It is seated in the first room with
   a free seat (a new ``room-<hex>`` room if none) and receives ``JoinedRoom``.
2. When the second seat fills, the newcomer receives
   ``SignalToClient(UserHere{channel_id})`` with the room's data channel id.
   The waiting peer's ``UserHere`` is held back until the newcomer's first
   SDP has been forwarded to it, so only the newcomer opens a negotiation.
3. ``SignalFromClient{content}`` from one member is delivered to the other as
   ``SignalToClient{content}``.
4. When a member of a paired room leaves, the room takes no new members.
   The remaining peer has to reconnect to be paired again.

Usage:
    python -m rtc_chat.relay [--host HOST] [--port PORT]
    rtc-chat relay --port 8080
"""

import argparse
import asyncio
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed

from rtc_chat.exceptions import ProtocolDecodeError
from rtc_chat.protocol import (
    MAX_CHANNEL_ID,
    JoinedRoom,
    NewUser,
    Participant,
    Room,
    SdpSignal,
    SignalEnvelope,
    SignalFromClient,
    SignalingMessage,
    SignalToClient,
    UserHere,
    decode_envelope,
    encode_envelope,
)

ROOM_CAPACITY = 2


@dataclass(eq=False)
class Member:
    participant: Participant
    websocket: Any
    room: Optional["RelayRoom"] = None


@dataclass(eq=False)
class RelayRoom:
    """A two-seat room.

    Attributes:
        name: Room name sent in ``JoinedRoom``.
        channel_id: Negotiated data channel id announced in ``UserHere``.
        members: Seated members, in join order.
        deferred: Member whose ``UserHere`` waits for the partner's first SDP.
        spent: The room paired once and then lost a member. It takes no
            new members.
    """

    name: str
    channel_id: int
    members: List[Member] = field(default_factory=list)
    deferred: Optional[Member] = None
    spent: bool = False

    @property
    def full(self) -> bool:
        return len(self.members) >= ROOM_CAPACITY

    def partner_of(self, member: Member) -> Optional[Member]:
        for other in self.members:
            if other is not member:
                return other
        return None


class Relay:
    """Room bookkeeping and message forwarding for connected peers."""

    def __init__(self):
        self.rooms: Dict[str, RelayRoom] = {}
        self._next_channel_id = 1

    def _allocate_channel_id(self) -> int:
        channel_id = self._next_channel_id
        self._next_channel_id = channel_id + 1 if channel_id < MAX_CHANNEL_ID else 1
        return channel_id

    def _open_room(self) -> RelayRoom:
        for room in self.rooms.values():
            if not room.full and not room.spent:
                return room
        room = RelayRoom(
            name=f"room-{secrets.token_hex(3)}", channel_id=self._allocate_channel_id()
        )
        self.rooms[room.name] = room
        logger.info(f"Created {room.name} (channel id {room.channel_id})")
        return room

    async def _send(self, member: Member, envelope: SignalEnvelope) -> None:
        try:
            await member.websocket.send(encode_envelope(envelope))
        except ConnectionClosed:
            logger.warning(
                f"Could not deliver {type(envelope).__name__} to {member.participant.name}: connection closed"
            )

    async def join(self, member: Member) -> RelayRoom:
        """Seat a member and announce the room (and partner, if any)."""
        room = self._open_room()
        room.members.append(member)
        member.room = room
        logger.info(
            f"{member.participant.name} joined {room.name} ({len(room.members)}/{ROOM_CAPACITY})"
        )
        await self._send(member, JoinedRoom(Room(room.name)))

        if room.full:
            waiting, newcomer = room.members[0], room.members[-1]
            room.deferred = waiting
            await self._send(newcomer, SignalToClient(UserHere(room.channel_id)))
        return room

    async def forward(self, member: Member, content: SignalingMessage) -> None:
        """Deliver a member's signaling message to its partner."""
        room = member.room
        partner = room.partner_of(member) if room is not None else None
        if partner is None:
            logger.warning(
                f"No partner for {member.participant.name}, dropping {type(content).__name__}"
            )
            return

        await self._send(partner, SignalToClient(content))
        logger.info(
            f"Forwarded {type(content).__name__} from {member.participant.name} to {partner.participant.name}"
        )

        if room.deferred is partner and isinstance(content, SdpSignal):
            room.deferred = None
            await self._send(partner, SignalToClient(UserHere(room.channel_id)))

    def leave(self, member: Member) -> None:
        room = member.room
        if room is None:
            return
        if room.full:
            room.spent = True
        if member in room.members:
            room.members.remove(member)
        room.deferred = None
        member.room = None
        if not room.members:
            del self.rooms[room.name]
            logger.info(f"Closed {room.name}")
        else:
            logger.info(f"{member.participant.name} left {room.name}, room closed to new members")

    async def handler(self, websocket) -> None:
        """Handle one peer's websocket connection."""
        member: Optional[Member] = None

        try:
            async for frame in websocket:
                try:
                    envelope = decode_envelope(frame)
                except ProtocolDecodeError as e:
                    logger.warning(f"Ignoring undecodable frame: {e}")
                    continue

                if isinstance(envelope, NewUser):
                    if member is not None:
                        logger.warning(f"{member.participant.name} sent NewUser twice, ignoring")
                        continue
                    member = Member(participant=envelope.participant, websocket=websocket)
                    await self.join(member)

                elif isinstance(envelope, SignalFromClient):
                    if member is None:
                        logger.warning("Signal received before NewUser, ignoring")
                        continue
                    await self.forward(member, envelope.content)

                else:
                    logger.debug(f"Ignoring {type(envelope).__name__} sent by a client")

        except ConnectionClosed:
            logger.info("Connection closed")
        finally:
            if member is not None:
                self.leave(member)


async def serve(host: str, port: int) -> None:
    """Start the relay and run forever."""
    relay = Relay()
    async with websockets.serve(relay.handler, host, port):
        logger.info(f"Signaling relay running on ws://{host}:{port}")
        await asyncio.Future()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="rtc-chat signaling relay")
    parser.add_argument("--host", default="localhost", help="Host to bind to (default: localhost)")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on (default: 8080)")

    args = parser.parse_args()

    try:
        asyncio.run(serve(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Relay stopped")
