"""Owner of the single negotiated chat data channel."""

from typing import Optional, Union

from loguru import logger

from rtc_chat.chat.bridge import ChatBridge, SenderRole
from rtc_chat.peer.facade import DataChannel


class DataChannelManager:
    """Holds the chat data channel and moves payloads across it.

    The channel is created by the coordinator (negotiated out-of-band with the
    id from ``UserHere``) and attached here. Inbound payloads go to the
    ``ChatBridge`` as messages from the remote peer.
    """

    def __init__(self, bridge: Optional[ChatBridge] = None):
        self.bridge = bridge
        self.channel: Optional[DataChannel] = None

    @property
    def is_open(self) -> bool:
        return self.channel is not None and self.channel.readyState == "open"

    def attach(self, channel: DataChannel) -> None:
        """Take ownership of a freshly created data channel.

        Raises:
            RuntimeError: If a channel is already attached.
        """
        if self.channel is not None:
            raise RuntimeError("A data channel is already attached")
        self.channel = channel
        channel.on("open", self.on_open)
        channel.on("close", self.on_close)
        channel.on("message", self.on_message)
        logger.info(f"Data channel '{channel.label}' (id={channel.id}) created")

    def on_open(self) -> None:
        logger.info("Data channel open")

    def on_close(self) -> None:
        logger.info("Data channel closed")

    def on_message(self, message: Union[str, bytes]) -> None:
        """Deliver an inbound payload to the chat bridge."""
        if isinstance(message, (bytes, bytearray)):
            try:
                message = bytes(message).decode("utf-8")
            except UnicodeDecodeError:
                logger.warning(f"Dropping non UTF-8 payload ({len(message)} bytes)")
                return
        if not isinstance(message, str):
            logger.warning(f"Received message of unexpected type {type(message).__name__}")
            return

        if self.bridge is None:
            logger.debug("No chat bridge attached, dropping inbound message")
            return
        self.bridge.deliver(SenderRole.REMOTE, message)

    def send(self, payload: Union[str, bytes]) -> bool:
        """Send a payload to the remote peer.

        Returns:
            True if the payload was sent. When the channel is missing or not
            open, or the send fails, the problem is logged and False is
            returned.
        """
        if self.channel is None:
            logger.warning("Cannot send message: no data channel yet")
            return False
        if self.channel.readyState != "open":
            logger.warning(
                f"Cannot send message: data channel is {self.channel.readyState}"
            )
            return False
        try:
            self.channel.send(payload)
        except Exception as e:
            logger.error(f"Could not send message: {e}")
            return False
        return True
