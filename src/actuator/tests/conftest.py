"""Shared fixtures and fake transports for actuator link tests."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, time

import pytest

from src.actuator.base import DeviceConnection, DeviceTransport, MedicationEntry, TransportError
from src.actuator.config_loader import ActuatorConfig, TimingConfig
from src.actuator.store import InMemoryScheduleStore

TEST_PATIENT_ID = "patient-0001"
TEST_DATE = date(2025, 11, 15)
TEST_TIME = time(8, 30)
TEST_NOW = datetime(2025, 11, 15, 8, 30, 12)

CHANNELS = {"Medicine 1": "LED1", "Medicine 2": "LED2"}

# Small enough for tests to wait on real timers
FAST_DELAY = 0.02


# ---------------------------------------------------------------------------
# Fake device
# ---------------------------------------------------------------------------


class FakeConnection(DeviceConnection):
    """In-memory connection that records sends and can be dropped."""

    def __init__(self, fail_sends: bool = False) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.fail_sends = fail_sends
        self.send_delay = 0.0
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        if self.closed or self.fail_sends:
            raise TransportError("socket closed")
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        self.sent.append(text)

    async def recv(self) -> str | bytes:
        frame = await self._inbox.get()
        if frame is None:
            raise TransportError("device went away")
        return frame

    async def close(self) -> None:
        self.closed = True

    def push(self, frame: str) -> None:
        self._inbox.put_nowait(frame)

    def drop(self) -> None:
        """Simulate the device closing the socket."""
        self._inbox.put_nowait(None)


class FakeTransport(DeviceTransport):
    """Transport that fails the first ``fail_first`` opens.

    With ``hold=True`` every open blocks until ``release()`` is called, so a
    test can observe the CONNECTING state and fire events by hand.
    """

    def __init__(self, fail_first: int = 0, hold: bool = False) -> None:
        self.url = "ws://box.test:81/"
        self.fail_first = fail_first
        self.opens = 0
        self.connections: list[FakeConnection] = []
        self._hold = hold
        self._released: asyncio.Event | None = None

    async def open(self) -> FakeConnection:
        self.opens += 1
        if self._hold:
            if self._released is None:
                self._released = asyncio.Event()
            await self._released.wait()
        if self.opens <= self.fail_first:
            raise TransportError("connection refused")
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    def release(self) -> None:
        self._hold = False
        if self._released is not None:
            self._released.set()

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]

    @property
    def all_sent(self) -> list[str]:
        return [token for conn in self.connections for token in conn.sent]


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_for(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` until true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def actuator_config() -> ActuatorConfig:
    return ActuatorConfig(
        version="test",
        timing=TimingConfig(
            tick_interval_seconds=FAST_DELAY,
            reconnect_delay_seconds=FAST_DELAY,
            pulse_off_delay_seconds=FAST_DELAY,
        ),
        channels=dict(CHANNELS),
    )


def make_entry(name: str, day: date = TEST_DATE, at: time = TEST_TIME) -> MedicationEntry:
    return MedicationEntry(name=name, scheduled_date=day, scheduled_time=at, created_by="caregiver-1")


@pytest.fixture
def scenario_store() -> InMemoryScheduleStore:
    """Patient P with Medicine 1 and Medicine 2 both due 2025-11-15 08:30."""
    store = InMemoryScheduleStore()
    store.add_entry(TEST_PATIENT_ID, make_entry("Medicine 1"))
    store.add_entry(TEST_PATIENT_ID, make_entry("Medicine 2"))
    return store
