"""Terminal front end for the chat.

Reads lines with prompt_toolkit and prints messages from the remote peer
above the prompt. ``/quit`` or Ctrl-D leaves the chat.
"""

from prompt_toolkit import PromptSession, print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout

from rtc_chat.chat.bridge import ChatMessage, SenderRole
from rtc_chat.session import ChatPeer

QUIT_COMMANDS = {"/quit", "/exit"}


def format_message(message: ChatMessage) -> FormattedText:
    """Render a chat message as styled text."""
    stamp = message.timestamp.strftime("%H:%M:%S")
    if message.sender is SenderRole.REMOTE:
        who = ("bold fg:ansigreen", "peer")
    else:
        who = ("bold fg:ansiblue", "you")
    return FormattedText(
        [
            ("fg:ansibrightblack", f"[{stamp}] "),
            who,
            ("", f": {message.text}"),
        ]
    )


def _print_remote(message: ChatMessage) -> None:
    # Local lines are already on screen from the prompt.
    if message.sender is SenderRole.REMOTE:
        print_formatted_text(format_message(message))


async def run_console(peer: ChatPeer) -> None:
    """Interactive loop: every entered line goes to the remote peer."""
    prompt = PromptSession()
    peer.bridge.subscribe(_print_remote)
    try:
        with patch_stdout():
            while True:
                try:
                    text = await prompt.prompt_async("> ")
                except (EOFError, KeyboardInterrupt):
                    break

                text = text.strip()
                if not text:
                    continue
                if text in QUIT_COMMANDS:
                    break
                if not peer.send_text(text):
                    print_formatted_text(
                        FormattedText(
                            [("fg:ansiyellow", "(not connected to a peer yet, message not sent)")]
                        )
                    )
    finally:
        peer.bridge.unsubscribe(_print_remote)
