"""Hand-off between the data channel and whatever displays the chat.

``ChatBridge`` is a small in-process pub/sub: subscribers register a callback
and receive every ``ChatMessage``, whether it came from the remote peer or was
typed locally.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from loguru import logger


class SenderRole(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class ChatMessage:
    sender: SenderRole
    text: str
    timestamp: datetime = field(default_factory=datetime.now)


Subscriber = Callable[[ChatMessage], None]


class ChatBridge:
    """Fan-out of chat messages to subscribers.

    Attributes:
        sender: Callable used by ``outgoing`` to put text on the wire. It
            returns True when the text was sent. Bound by ``ChatPeer`` to
            ``DataChannelManager.send``.
    """

    def __init__(self, sender: Optional[Callable[[str], bool]] = None):
        self.sender = sender
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _publish(self, message: ChatMessage) -> None:
        for callback in list(self._subscribers):
            try:
                callback(message)
            except Exception:
                logger.exception("Chat subscriber failed")

    def deliver(self, sender_role: SenderRole, text: str) -> None:
        """Publish a message received from a peer."""
        self._publish(ChatMessage(sender=SenderRole(sender_role), text=text))

    def outgoing(self, text: str) -> bool:
        """Send text typed by the local user.

        The local echo is published whether or not the send succeeded, so the
        UI shows what the user typed.

        Returns:
            True if the text was handed to the data channel.
        """
        if self.sender is None:
            logger.warning("No data channel bound to the chat, message not sent")
            sent = False
        else:
            sent = self.sender(text)
        self._publish(ChatMessage(sender=SenderRole.LOCAL, text=text))
        return sent
