import asyncio

from loguru import logger

from rtc_chat.chat.console import run_console
from rtc_chat.config import Config
from rtc_chat.session import ChatPeer, new_participant


async def _run_peer(name: str, config: Config) -> None:
    peer = ChatPeer(new_participant(name), config=config)
    tasks = []
    try:
        await peer.start()
        console = asyncio.create_task(run_console(peer))
        closed = asyncio.create_task(peer.wait_closed())
        tasks = [console, closed]
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        if closed.done() and not console.done():
            logger.warning("Signaling server went away, the chat keeps running while the peer connection lasts")
            await console
    finally:
        for task in tasks:
            task.cancel()
        await peer.close()


def run_chat_peer(name: str, config: Config) -> None:
    """Standalone function to run an interactive chat peer.

    Args:
        name: Display name announced to the relay.
        config: Loaded configuration (CLI overrides already applied).
    """
    try:
        asyncio.run(_run_peer(name, config))
    except KeyboardInterrupt:
        logger.info("Chat interrupted by user. Shutting down...")
