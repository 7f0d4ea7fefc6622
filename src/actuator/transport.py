"""WebSocket transport to the medication box.

The box runs a plain WebSocket server on the local network and treats every
text frame as a command token.  It never acknowledges; anything it sends
back is logged by the link and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import logging

import websockets
from websockets.exceptions import WebSocketException

from src.actuator.base import DeviceConnection, DeviceTransport, TransportError

logger = logging.getLogger("neurolink.actuator.transport")


class WebSocketConnection(DeviceConnection):
    def __init__(self, ws) -> None:
        self._ws = ws

    async def send(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except (WebSocketException, OSError) as exc:
            raise TransportError(f"send failed: {exc}") from exc

    async def recv(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except (WebSocketException, OSError) as exc:
            raise TransportError(f"connection lost: {exc}") from exc

    async def close(self) -> None:
        await self._ws.close()


class WebSocketTransport(DeviceTransport):
    """Open ``ws://`` connections to one fixed device endpoint.

    Args:
        url:          Device endpoint, e.g. ``ws://192.168.4.1:81/``.
        open_timeout: Seconds allowed for TCP connect plus handshake.
    """

    def __init__(self, url: str, open_timeout: float = 10.0) -> None:
        self.url = url
        self._open_timeout = open_timeout

    async def open(self) -> WebSocketConnection:
        try:
            ws = await websockets.connect(
                self.url,
                open_timeout=self._open_timeout,
                ping_interval=20,
                ping_timeout=20,
            )
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(f"cannot reach device at {self.url}: {exc}") from exc
        logger.debug("WebSocket handshake with %s complete", self.url)
        return WebSocketConnection(ws)
