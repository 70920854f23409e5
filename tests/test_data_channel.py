"""Tests for DataChannelManager."""

import pytest

from rtc_chat.chat.bridge import ChatBridge, SenderRole
from rtc_chat.peer.data_channel import DataChannelManager


@pytest.fixture
def received(bridge):
    messages = []
    bridge.subscribe(messages.append)
    return messages


@pytest.fixture
def manager(bridge):
    return DataChannelManager(bridge)


class TestAttach:
    def test_attach_registers_handlers(self, manager, make_channel):
        channel = make_channel("r1", 7)
        manager.attach(channel)

        assert manager.channel is channel
        assert set(channel._handlers) == {"open", "close", "message"}

    def test_second_attach_rejected(self, manager, make_channel):
        manager.attach(make_channel("r1", 7))
        with pytest.raises(RuntimeError):
            manager.attach(make_channel("r1", 8))

    def test_is_open_follows_ready_state(self, manager, make_channel):
        assert not manager.is_open
        channel = make_channel("r1", 7)
        manager.attach(channel)
        assert not manager.is_open
        channel.open()
        assert manager.is_open


class TestSend:
    def test_send_without_channel_returns_false(self, manager):
        assert manager.send("hi") is False

    def test_send_before_open_returns_false(self, manager, make_channel):
        channel = make_channel("r1", 7)
        manager.attach(channel)

        assert manager.send("hi") is False
        assert channel.sent == []

    def test_send_on_open_channel(self, manager, make_channel):
        channel = make_channel("r1", 7)
        manager.attach(channel)
        channel.open()

        assert manager.send("hi") is True
        assert channel.sent == ["hi"]

    def test_send_failure_returns_false(self, manager, make_channel):
        channel = make_channel("r1", 7)
        manager.attach(channel)
        channel.open()

        def explode(data):
            raise ConnectionError("transport gone")

        channel.send = explode
        assert manager.send("hi") is False


class TestReceive:
    def test_text_delivered_as_remote(self, manager, received, make_channel):
        channel = make_channel("r1", 7)
        manager.attach(channel)

        channel.emit("message", "hello")

        assert [(m.sender, m.text) for m in received] == [(SenderRole.REMOTE, "hello")]

    def test_utf8_bytes_decoded(self, manager, received, make_channel):
        channel = make_channel("r1", 7)
        manager.attach(channel)

        channel.emit("message", "héllo".encode("utf-8"))

        assert [m.text for m in received] == ["héllo"]

    def test_invalid_bytes_dropped(self, manager, received, make_channel):
        channel = make_channel("r1", 7)
        manager.attach(channel)

        channel.emit("message", b"\xff\xfe")

        assert received == []

    def test_without_bridge_messages_dropped(self, make_channel):
        manager = DataChannelManager()
        channel = make_channel("r1", 7)
        manager.attach(channel)

        channel.emit("message", "hello")  # must not raise

    def test_messages_flow_between_linked_channels(self, network, make_channel):
        left_bridge, right_bridge = ChatBridge(), ChatBridge()
        left, right = DataChannelManager(left_bridge), DataChannelManager(right_bridge)
        got = []
        right_bridge.subscribe(lambda m: got.append(m.text))

        a, b = make_channel("r1", 3), make_channel("r1", 3)
        left.attach(a)
        right.attach(b)
        network.register(a)
        network.register(b)

        assert left.send("ping")
        assert got == ["ping"]
