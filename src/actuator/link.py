"""Persistent, auto-reconnecting link to the medication box actuator.

State machine::

    DISCONNECTED ──connect()──▶ CONNECTING ──opened──▶ CONNECTED
         ▲                          │                      │
         └──── errored / closed ────┴──────────────────────┘
                       (reconnect after a fixed delay)

All state lives on one asyncio event loop.  Transport callbacks, the
reconnect timer and ``send()`` are only ever run from that loop, so no
further locking is needed.  Commands sent while not CONNECTED are dropped,
never queued: a late LED pulse is worse than a missing one.

Usage::

    link = DeviceLink(WebSocketTransport("ws://192.168.4.1:81/"))
    link.connect()
    link.send("LED1")
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from src.actuator.base import DeviceConnection, DeviceTransport, LinkState

logger = logging.getLogger("neurolink.actuator.link")

DEFAULT_RECONNECT_DELAY = 5.0


class DeviceLink:
    """Own the single outbound connection to the actuator device.

    Attributes:
        reconnect_delay: Seconds to wait after a drop or failed attempt.
    """

    def __init__(
        self,
        transport: DeviceTransport,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ) -> None:
        self._transport = transport
        self.reconnect_delay = reconnect_delay
        self._state = LinkState.DISCONNECTED
        self._conn: DeviceConnection | None = None

        # Set while a connect attempt is in flight or a reconnect is scheduled
        self._attempt_pending = False
        self._connect_task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._reader_task: asyncio.Task | None = None
        self._write_tasks: set[asyncio.Task] = set()
        self._closed = False

        self.connect_attempts = 0
        self.last_error: str | None = None
        self.connected_since: datetime | None = None

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is LinkState.CONNECTED

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None

    def connect(self) -> bool:
        """Issue one connect attempt on the running loop.

        A no-op while connected, while an attempt is in flight, while a
        reconnect is already scheduled, or after ``close()``.

        Returns:
            True if a new attempt was started.
        """
        if self._closed or self._attempt_pending or self._state is LinkState.CONNECTED:
            return False

        loop = asyncio.get_running_loop()
        self._attempt_pending = True
        self._state = LinkState.CONNECTING
        self.connect_attempts += 1
        logger.info(
            "Connecting to device at %s (attempt %d)", self._transport.url, self.connect_attempts
        )
        self._connect_task = loop.create_task(self._open())
        return True

    def send(self, command: str) -> bool:
        """Best-effort, fire-and-forget write of one command token.

        Returns:
            True if the command was handed to the transport, False if it was
            dropped because the link is not connected.
        """
        conn = self._conn
        if self._state is not LinkState.CONNECTED or conn is None:
            logger.debug("Device link %s, dropping command %r", self._state.value, command)
            return False

        task = asyncio.get_running_loop().create_task(self._write(conn, command))
        self._write_tasks.add(task)
        task.add_done_callback(self._write_tasks.discard)
        return True

    async def close(self) -> None:
        """Tear the link down for process shutdown. No further reconnects."""
        self._closed = True
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        for task in (self._connect_task, self._reader_task):
            if task is not None and not task.done():
                task.cancel()
        for task in list(self._write_tasks):
            task.cancel()
        self._write_tasks.clear()
        conn, self._conn = self._conn, None
        self._state = LinkState.DISCONNECTED
        self._attempt_pending = False
        self.connected_since = None
        if conn is not None:
            await self._close_quietly(conn)
        logger.info("Device link closed")

    def snapshot(self) -> dict[str, Any]:
        """Read-only status for the health endpoint."""
        return {
            "state": self._state.value,
            "url": self._transport.url,
            "connect_attempts": self.connect_attempts,
            "reconnect_scheduled": self.reconnect_scheduled,
            "last_error": self.last_error,
            "connected_since": (
                self.connected_since.isoformat() if self.connected_since else None
            ),
        }

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def handle_opened(self, conn: DeviceConnection) -> None:
        """Transport reported open: CONNECTING → CONNECTED."""
        if self._closed or (self._conn is not None and self._conn is not conn):
            # late open after shutdown, or a second open racing the live one
            asyncio.get_running_loop().create_task(self._close_quietly(conn))
            return
        self._conn = conn
        self._state = LinkState.CONNECTED
        self._attempt_pending = False
        self.last_error = None
        self.connected_since = datetime.now(timezone.utc)
        logger.info("Device link connected to %s", self._transport.url)
        self._reader_task = asyncio.get_running_loop().create_task(self._read_loop(conn))

    def handle_closed(self, reason: str | None = None) -> None:
        """Transport reported close: → DISCONNECTED, reconnect later."""
        self._drop(reason or "connection closed")

    def handle_error(self, exc: BaseException) -> None:
        """Transport reported an error: → DISCONNECTED, reconnect later."""
        self._drop(f"{type(exc).__name__}: {exc}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _drop(self, reason: str) -> None:
        if self._closed:
            return
        if self._state is LinkState.DISCONNECTED and self._reconnect_handle is not None:
            # close + error for the same drop; reconnect already scheduled
            return

        previous = self._state
        conn, self._conn = self._conn, None
        self._state = LinkState.DISCONNECTED
        self._attempt_pending = False
        self.connected_since = None
        self.last_error = reason

        loop = asyncio.get_running_loop()
        reader = self._reader_task
        self._reader_task = None
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
        if conn is not None:
            loop.create_task(self._close_quietly(conn))

        logger.warning(
            "Device link %s → disconnected (%s); reconnecting in %.0fs",
            previous.value, reason, self.reconnect_delay,
        )
        self._schedule_reconnect(loop)

    def _schedule_reconnect(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._closed or self._reconnect_handle is not None:
            return
        self._attempt_pending = True
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._reconnect_now)

    def _reconnect_now(self) -> None:
        self._reconnect_handle = None
        self._attempt_pending = False
        self.connect()

    async def _open(self) -> None:
        try:
            conn = await self._transport.open()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.handle_error(exc)
            return
        self.handle_opened(conn)

    async def _read_loop(self, conn: DeviceConnection) -> None:
        try:
            while True:
                frame = await conn.recv()
                logger.debug("Device says: %r", frame)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._conn is conn:
                self.handle_closed(str(exc) or type(exc).__name__)

    async def _write(self, conn: DeviceConnection, command: str) -> None:
        try:
            await conn.send(command)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Write of %r to device failed: %s", command, exc)
            if self._conn is conn:
                self.handle_error(exc)
            return
        logger.debug("Sent %r to device", command)

    @staticmethod
    async def _close_quietly(conn: DeviceConnection) -> None:
        try:
            await conn.close()
        except Exception as exc:
            logger.debug("Ignoring error while closing device connection: %s", exc)
