"""Websocket transport to the signaling relay.

``SignalingTransport`` owns the single persistent websocket a chat peer keeps
open to the relay. It turns inbound frames into ``SignalEnvelope`` values and
reports everything that happens on the connection as transport events, handed
to one registered callback:

- ``Connected`` once the websocket is open.
- ``ConnectionFailed`` when the websocket could not be opened.
- ``EnvelopeReceived`` for every frame that decodes.
- ``DecodeFailed`` for frames that do not; the frame is dropped and the
  listener moves on to the next one.
- ``Disconnected`` when the relay closes the connection or it breaks.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException

from rtc_chat.exceptions import ProtocolDecodeError, TransportError
from rtc_chat.protocol import SignalEnvelope, decode_envelope, encode_envelope


@dataclass
class Connected:
    url: str


@dataclass
class ConnectionFailed:
    url: str
    error: Exception


@dataclass
class Disconnected:
    reason: str


@dataclass
class EnvelopeReceived:
    envelope: SignalEnvelope


@dataclass
class DecodeFailed:
    error: ProtocolDecodeError


TransportEvent = Union[
    Connected, ConnectionFailed, Disconnected, EnvelopeReceived, DecodeFailed
]


class SignalingTransport:
    """Persistent JSON-over-websocket channel to the relay.

    Attributes:
        url: Websocket URL of the relay.
        on_event: Callback receiving every ``TransportEvent``.
    """

    def __init__(
        self,
        url: str,
        on_event: Optional[Callable[[TransportEvent], None]] = None,
    ):
        self.url = url
        self.on_event = on_event
        self._websocket = None
        self._open = False

    @property
    def connected(self) -> bool:
        return self._open

    def _emit(self, event: TransportEvent) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(event)
        except Exception:
            # One bad handler call must not stall the frames behind it.
            logger.exception(f"Transport event handler failed for {type(event).__name__}")

    async def connect(self) -> "SignalingTransport":
        """Open the websocket to the relay.

        Returns:
            This transport, for chaining.

        Raises:
            TransportError: If the connection could not be established. A
                ``ConnectionFailed`` event is emitted first.
        """
        logger.info(f"Connecting to signaling server at {self.url}")
        try:
            self._websocket = await websockets.connect(self.url)
        except (OSError, WebSocketException, TimeoutError) as e:
            logger.error(f"Could not connect to signaling server {self.url}: {e}")
            self._emit(ConnectionFailed(url=self.url, error=e))
            raise TransportError(f"Could not connect to {self.url}: {e}") from e

        self._open = True
        logger.info("Signaling socket opened")
        self._emit(Connected(url=self.url))
        return self

    async def send(self, envelope: SignalEnvelope) -> bool:
        """Serialize and transmit an envelope.

        Args:
            envelope: The envelope to send.

        Returns:
            True if the frame was handed to the websocket, False otherwise.
            Failures are logged; this method never raises for I/O errors.
        """
        name = type(envelope).__name__
        if self._websocket is None or not self._open:
            logger.error(f"Cannot send {name}: signaling channel is not open")
            return False

        try:
            await self._websocket.send(encode_envelope(envelope))
        except (ConnectionClosed, WebSocketException, OSError) as e:
            logger.error(f"Error sending {name} to signaling server: {e}")
            return False

        logger.debug(f"Sent {name}")
        return True

    def _dispatch_frame(self, frame) -> None:
        try:
            envelope = decode_envelope(frame)
        except ProtocolDecodeError as e:
            logger.error(f"Dropping undecodable signaling frame: {e}")
            self._emit(DecodeFailed(error=e))
            return
        self._emit(EnvelopeReceived(envelope=envelope))

    async def listen(self) -> None:
        """Receive frames until the connection closes.

        This is the only method that reads from the websocket. Returns once
        the connection is gone, after emitting ``Disconnected``.

        Raises:
            TransportError: If called before ``connect``.
        """
        if self._websocket is None:
            raise TransportError("listen() called before connect()")

        reason = "closed by server"
        try:
            async for frame in self._websocket:
                self._dispatch_frame(frame)
        except ConnectionClosed as e:
            reason = f"connection lost: {e}"
        except (WebSocketException, OSError) as e:
            reason = f"connection error: {e}"
        finally:
            self._open = False

        logger.info(f"Signaling socket closed ({reason})")
        self._emit(Disconnected(reason=reason))

    async def close(self) -> None:
        """Close the websocket if it is open."""
        self._open = False
        if self._websocket is not None:
            await self._websocket.close()
