"""Chat hand-off between the data channel and the user interface.

This module provides:
- bridge: ChatBridge pub/sub and ChatMessage
- console: prompt_toolkit terminal front end (imported on demand)
"""

from rtc_chat.chat.bridge import ChatBridge, ChatMessage, SenderRole

__all__ = [
    "ChatBridge",
    "ChatMessage",
    "SenderRole",
]
