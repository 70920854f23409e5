"""Tests for the interactive chat runner."""

from unittest import mock

import pytest

from rtc_chat.config import Config
from rtc_chat.exceptions import TransportError
from rtc_chat.rtc_peer import _run_peer


class TestRunPeer:
    @pytest.mark.asyncio
    async def test_peer_closed_when_relay_unreachable(self):
        peer = mock.MagicMock()
        peer.start = mock.AsyncMock(side_effect=TransportError("Could not connect"))
        peer.close = mock.AsyncMock()

        with mock.patch("rtc_chat.rtc_peer.ChatPeer", return_value=peer), mock.patch(
            "rtc_chat.rtc_peer.run_console"
        ) as console:
            with pytest.raises(TransportError):
                await _run_peer("alice", Config())

        peer.close.assert_awaited_once()
        console.assert_not_called()

    @pytest.mark.asyncio
    async def test_peer_closed_after_console_exits(self):
        peer = mock.MagicMock()
        peer.start = mock.AsyncMock()
        peer.close = mock.AsyncMock()
        peer.wait_closed = mock.AsyncMock()

        with mock.patch("rtc_chat.rtc_peer.ChatPeer", return_value=peer), mock.patch(
            "rtc_chat.rtc_peer.run_console", new=mock.AsyncMock()
        ):
            await _run_peer("alice", Config())

        peer.close.assert_awaited_once()
