"""Tests for the websocket signaling transport."""

from unittest.mock import AsyncMock, patch

import pytest

from rtc_chat.exceptions import TransportError
from rtc_chat.protocol import (
    JoinedRoom,
    NewUser,
    Participant,
    Room,
    SignalToClient,
    UserHere,
    encode_envelope,
)
from rtc_chat.signaling.transport import (
    Connected,
    ConnectionFailed,
    DecodeFailed,
    Disconnected,
    EnvelopeReceived,
    SignalingTransport,
)


class FakeWebSocket:
    """Async-iterable websocket that replays a fixed list of frames."""

    def __init__(self, frames=(), error=None):
        self.frames = list(frames)
        self.error = error
        self.sent = []
        self.closed = False
        self.fail_send = None

    async def send(self, data):
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(data)

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for frame in self.frames:
            yield frame
        if self.error is not None:
            raise self.error


async def connected_transport(websocket):
    events = []
    transport = SignalingTransport("ws://relay.test", on_event=events.append)
    with patch(
        "rtc_chat.signaling.transport.websockets.connect",
        new=AsyncMock(return_value=websocket),
    ):
        await transport.connect()
    return transport, events


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_emits_connected(self):
        transport, events = await connected_transport(FakeWebSocket())

        assert transport.connected
        assert events == [Connected(url="ws://relay.test")]

    @pytest.mark.asyncio
    async def test_connect_failure_raises_and_emits(self):
        events = []
        transport = SignalingTransport("ws://relay.test", on_event=events.append)
        refused = ConnectionRefusedError("refused")

        with patch(
            "rtc_chat.signaling.transport.websockets.connect",
            new=AsyncMock(side_effect=refused),
        ):
            with pytest.raises(TransportError, match="relay.test"):
                await transport.connect()

        assert not transport.connected
        assert events == [ConnectionFailed(url="ws://relay.test", error=refused)]


class TestSend:
    @pytest.mark.asyncio
    async def test_send_encodes_envelope(self):
        websocket = FakeWebSocket()
        transport, _ = await connected_transport(websocket)
        envelope = NewUser(Participant("alice", "a1"))

        assert await transport.send(envelope) is True
        assert websocket.sent == [encode_envelope(envelope)]

    @pytest.mark.asyncio
    async def test_send_before_connect_returns_false(self):
        transport = SignalingTransport("ws://relay.test")
        assert await transport.send(NewUser(Participant("alice", "a1"))) is False

    @pytest.mark.asyncio
    async def test_send_error_returns_false(self):
        websocket = FakeWebSocket()
        websocket.fail_send = OSError("broken pipe")
        transport, _ = await connected_transport(websocket)

        assert await transport.send(NewUser(Participant("alice", "a1"))) is False

    @pytest.mark.asyncio
    async def test_send_after_close_returns_false(self):
        websocket = FakeWebSocket()
        transport, _ = await connected_transport(websocket)
        await transport.close()

        assert websocket.closed
        assert await transport.send(NewUser(Participant("alice", "a1"))) is False


class TestListen:
    @pytest.mark.asyncio
    async def test_frames_become_events_in_order(self):
        frames = [
            encode_envelope(JoinedRoom(Room("r1"))),
            encode_envelope(SignalToClient(UserHere(7))),
        ]
        transport, events = await connected_transport(FakeWebSocket(frames))

        await transport.listen()

        assert events[1:3] == [
            EnvelopeReceived(JoinedRoom(Room("r1"))),
            EnvelopeReceived(SignalToClient(UserHere(7))),
        ]
        assert isinstance(events[-1], Disconnected)
        assert not transport.connected

    @pytest.mark.asyncio
    async def test_bad_frame_does_not_stop_listener(self):
        frames = ["{garbage", encode_envelope(JoinedRoom(Room("r1")))]
        transport, events = await connected_transport(FakeWebSocket(frames))

        await transport.listen()

        assert isinstance(events[1], DecodeFailed)
        assert events[2] == EnvelopeReceived(JoinedRoom(Room("r1")))

    @pytest.mark.asyncio
    async def test_deeply_nested_frame_does_not_stop_listener(self):
        frames = ["[" * 200000, encode_envelope(JoinedRoom(Room("r1")))]
        transport, events = await connected_transport(FakeWebSocket(frames))

        await transport.listen()

        assert isinstance(events[1], DecodeFailed)
        assert events[2] == EnvelopeReceived(JoinedRoom(Room("r1")))
        assert isinstance(events[-1], Disconnected)

    @pytest.mark.asyncio
    async def test_socket_error_reported_as_disconnect(self):
        websocket = FakeWebSocket(error=OSError("reset by peer"))
        transport, events = await connected_transport(websocket)

        await transport.listen()

        assert isinstance(events[-1], Disconnected)
        assert "reset by peer" in events[-1].reason

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_listener(self):
        frames = [encode_envelope(JoinedRoom(Room(f"r{i}"))) for i in range(3)]
        seen = []

        def handler(event):
            seen.append(event)
            if isinstance(event, EnvelopeReceived) and event.envelope.room.room == "r0":
                raise RuntimeError("handler bug")

        transport, _ = await connected_transport(FakeWebSocket(frames))
        transport.on_event = handler

        await transport.listen()

        assert [e.envelope.room.room for e in seen if isinstance(e, EnvelopeReceived)] == [
            "r0",
            "r1",
            "r2",
        ]

    @pytest.mark.asyncio
    async def test_listen_before_connect_raises(self):
        with pytest.raises(TransportError):
            await SignalingTransport("ws://relay.test").listen()
