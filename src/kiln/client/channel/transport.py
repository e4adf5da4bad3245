"""Channel transports.

A transport carries text frames for one logical connection. The channel
client only needs three operations, so tests swap in an in-memory
transport (``kiln.testing.MemoryTransport``) for the websocket one.
"""

import logging
from typing import Protocol

import websockets
from websockets.exceptions import ConnectionClosed

from kiln.errors import ChannelError

logger = logging.getLogger("kiln.channel")


class Transport(Protocol):
    """One open, bidirectional text-frame connection."""

    async def send(self, frame: str) -> None: ...

    async def recv(self) -> str:
        """Next inbound frame. Raises ``ChannelError`` once closed."""
        ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """Transport over a ``websockets`` client connection.

    Usage::

        transport = await WebSocketTransport.connect("wss://example.com/socket/websocket?vsn=2.0.0")
    """

    __slots__ = ("_ws", "url")

    def __init__(self, url: str, ws: websockets.ClientConnection) -> None:
        self.url = url
        self._ws = ws

    @classmethod
    async def connect(cls, url: str, *, open_timeout: float | None = 10.0) -> WebSocketTransport:
        logger.info("Connecting to channel at %s", url)
        try:
            ws = await websockets.connect(url, open_timeout=open_timeout)
        except (OSError, TimeoutError, websockets.InvalidHandshake) as exc:
            raise ChannelError(f"could not connect to {url}: {exc}") from exc
        logger.info("Connected to channel")
        return cls(url, ws)

    async def send(self, frame: str) -> None:
        try:
            await self._ws.send(frame)
        except ConnectionClosed as exc:
            raise ChannelError("connection closed") from exc

    async def recv(self) -> str:
        try:
            data = await self._ws.recv()
        except ConnectionClosed as exc:
            raise ChannelError(f"connection closed ({exc.rcvd.code if exc.rcvd else 'no close frame'})") from exc
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return data

    async def close(self) -> None:
        await self._ws.close()
