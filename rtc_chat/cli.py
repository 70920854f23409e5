"""Unified CLI for rtc-chat using Click."""

import asyncio
import getpass
import sys

import click
from loguru import logger

from rtc_chat.config import get_config
from rtc_chat.exceptions import TransportError

LOG_LEVELS = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"]


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _default_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "anonymous"


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Minimum level of log messages written to stderr.",
)
def cli(log_level):
    _configure_logging(log_level)


@cli.command()
@click.option(
    "--name",
    "-n",
    type=str,
    default=_default_name,
    help="Display name announced to the relay (default: your user name).",
)
@click.option(
    "--server",
    "-s",
    type=str,
    required=False,
    help="Signaling server websocket URL. Overrides config and RTC_CHAT_SIGNALING_WS.",
)
@click.option(
    "--stun",
    type=str,
    multiple=True,
    help="STUN/TURN server URL, repeatable. Overrides configured ICE servers.",
)
def chat(name, server, stun):
    """Start an interactive chat with the next peer on the relay.

    Example:
        rtc-chat chat --name alice --server ws://localhost:8080

    Type a line and press Enter to send it. /quit or Ctrl-D leaves.
    """
    from rtc_chat.rtc_peer import run_chat_peer

    config = get_config()
    if server:
        config.signaling_websocket = server
    if stun:
        config.ice_servers = list(stun)

    logger.info(f"Using signaling server {config.signaling_websocket}")
    try:
        run_chat_peer(name=name, config=config)
    except TransportError as e:
        logger.error(f"Could not start chat: {e}")
        sys.exit(1)


@cli.command()
@click.option("--host", default="localhost", show_default=True, help="Host to bind to.")
@click.option("--port", "-p", type=int, default=8080, show_default=True, help="Port to listen on.")
def relay(host, port):
    """Run the signaling relay that pairs chat peers.

    Example:
        rtc-chat relay --host 0.0.0.0 --port 8080
    """
    from rtc_chat.relay import serve

    try:
        asyncio.run(serve(host, port))
    except KeyboardInterrupt:
        logger.info("Relay stopped")
    except OSError as e:
        logger.error(f"Could not start relay on {host}:{port}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
