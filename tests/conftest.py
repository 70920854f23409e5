"""Shared fakes for the peer connection, data channel and signaling transport."""

from collections import defaultdict

import pytest

from rtc_chat.chat.bridge import ChatBridge
from rtc_chat.peer.coordinator import NegotiationCoordinator
from rtc_chat.peer.data_channel import DataChannelManager
from rtc_chat.peer.state import Session
from rtc_chat.protocol import SDP_OFFER, SessionDescription


class FakeDataChannel:
    """In-memory stand-in for an RTCDataChannel."""

    def __init__(self, label, id):
        self.label = label
        self.id = id
        self.readyState = "connecting"
        self.sent = []
        self.peer = None
        self._handlers = defaultdict(list)

    def on(self, event, f=None):
        self._handlers[event].append(f)
        return f

    def emit(self, event, *args):
        for handler in list(self._handlers[event]):
            handler(*args)

    def open(self):
        self.readyState = "open"
        self.emit("open")

    def send(self, data):
        if self.readyState != "open":
            raise RuntimeError("channel not open")
        self.sent.append(data)
        if self.peer is not None:
            self.peer.emit("message", data)


class FakeNetwork:
    """Links negotiated data channels that share an id, then opens them."""

    def __init__(self):
        self.channels = defaultdict(list)

    def register(self, channel):
        peers = self.channels[channel.id]
        peers.append(channel)
        if len(peers) == 2:
            a, b = peers
            a.peer, b.peer = b, a
            a.open()
            b.open()


class FakePeerConnection:
    """Records every call the coordinator makes and mimics signaling states."""

    def __init__(self, name="pc", network=None):
        self.name = name
        self.network = network
        self.calls = []
        self.added_candidates = []
        self.channels = []
        self.fail = set()
        self.fail_candidates = set()
        self.closed = False
        self._local = None
        self._remote = None
        self._signaling_state = "stable"
        self._handlers = defaultdict(list)

    def on(self, event, handler):
        self._handlers[event].append(handler)

    def emit(self, event, *args):
        for handler in list(self._handlers[event]):
            handler(*args)

    def _record(self, operation):
        self.calls.append(operation)
        if operation in self.fail:
            raise RuntimeError(f"{operation} exploded")

    def _set_state(self, state):
        if state != self._signaling_state:
            self._signaling_state = state
            self.emit("signalingstatechange")

    async def create_offer(self):
        self._record("create_offer")
        return SessionDescription("offer", f"v=0\r\no=- {self.name} offer\r\n")

    async def create_answer(self):
        self._record("create_answer")
        return SessionDescription("answer", f"v=0\r\no=- {self.name} answer\r\n")

    async def set_local_description(self, description):
        self._record("set_local_description")
        self._local = description
        self._set_state("have-local-offer" if description.sdp_type == SDP_OFFER else "stable")

    async def set_remote_description(self, description):
        self._record("set_remote_description")
        self._remote = description
        self._set_state("have-remote-offer" if description.sdp_type == SDP_OFFER else "stable")

    async def add_ice_candidate(self, candidate):
        self._record("add_ice_candidate")
        if candidate.candidate in self.fail_candidates:
            raise ValueError(f"bad candidate {candidate.candidate}")
        self.added_candidates.append(candidate)

    def local_description(self):
        return self._local

    def remote_description(self):
        return self._remote

    def signaling_state(self):
        return self._signaling_state

    def create_data_channel(self, label, negotiated=True, id=None):
        self._record("create_data_channel")
        channel = FakeDataChannel(label, id)
        self.channels.append(channel)
        if self.network is not None:
            self.network.register(channel)
        return channel

    async def close(self):
        self.closed = True


class FakeTransport:
    """Collects outbound envelopes instead of writing to a websocket."""

    def __init__(self):
        self.sent = []
        self.on_event = None
        self.accept = True
        self.connected = False

    async def connect(self):
        self.connected = True
        return self

    async def send(self, envelope):
        if not self.accept:
            return False
        self.sent.append(envelope)
        return True

    async def listen(self):
        pass

    async def close(self):
        self.connected = False


def make_coordinator(pc=None, transport=None, bridge=None):
    pc = pc if pc is not None else FakePeerConnection()
    transport = transport if transport is not None else FakeTransport()
    bridge = bridge if bridge is not None else ChatBridge()
    data_channels = DataChannelManager(bridge)
    bridge.sender = data_channels.send
    session = Session(peer_connection=pc, transport=transport)
    return NegotiationCoordinator(session, data_channels)


@pytest.fixture
def pc():
    return FakePeerConnection()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def bridge():
    return ChatBridge()


@pytest.fixture
def coordinator(pc, transport, bridge):
    return make_coordinator(pc, transport, bridge)


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def make_peer(network):
    """Factory for coordinators whose data channels meet on a shared network."""

    def _make(name):
        return make_coordinator(pc=FakePeerConnection(name, network=network))

    return _make


@pytest.fixture
def make_channel():
    return FakeDataChannel


@pytest.fixture
def fake_pc_factory():
    return FakePeerConnection


@pytest.fixture
def fake_transport_factory():
    return FakeTransport
