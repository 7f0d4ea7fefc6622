"""Base classes and canonical data models for the NeuroLink actuator link.

Every schedule store must subclass ScheduleStore and every device transport
must subclass DeviceTransport.  The ticker, dispatcher and device link only
ever talk to these abstractions, never to asyncpg or websockets directly.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any

logger = logging.getLogger("neurolink.actuator")

_SCHEDULE_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


# ---------------------------------------------------------------------------
# Medication schedule
# ---------------------------------------------------------------------------


def parse_schedule_date(value: date | str) -> date:
    """Coerce a stored calendar date (``date`` or ``YYYY-MM-DD``) to ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def parse_schedule_time(value: time | str) -> time:
    """Coerce a stored time-of-day (``time`` or ``HH:MM``) to a minute-precision ``time``.

    Seconds and microseconds are always dropped; the schedule only has minute
    resolution.

    Raises:
        ValueError: If the text is not a valid ``HH:MM`` time.
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    match = _SCHEDULE_TIME.match(str(value).strip())
    if match is None:
        raise ValueError(f"Invalid schedule time {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


@dataclass(frozen=True)
class MedicationEntry:
    """One scheduled dose in a patient's medication list.

    Entries are immutable once created.

    Attributes:
        name:           Medicine identifier, e.g. "Medicine 1".
        scheduled_date: Calendar date of the dose (no timezone).
        scheduled_time: Time of day, minute precision.
        created_by:     Caregiver that created the entry.
        created_at:     Creation timestamp. Informational only.
    """

    name: str
    scheduled_date: date
    scheduled_time: time
    created_by: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: Any) -> "MedicationEntry":
        """Build an entry from a store row (asyncpg Record or dict)."""
        return cls(
            name=record["name"],
            scheduled_date=parse_schedule_date(record["scheduled_date"]),
            scheduled_time=parse_schedule_time(record["scheduled_time"]),
            created_by=str(record.get("created_by") or ""),
            created_at=record.get("created_at"),
        )

    def is_due(self, on_date: date, at_time: time) -> bool:
        """Exact-minute match; never a range check."""
        return (self.scheduled_date, self.scheduled_time) == (
            on_date,
            at_time.replace(second=0, microsecond=0),
        )

    @property
    def time_label(self) -> str:
        return self.scheduled_time.strftime("%H:%M")


@dataclass(frozen=True)
class ScheduledDose:
    """A due entry together with the patient that owns it."""

    patient_id: str
    entry: MedicationEntry

    @property
    def fired_key(self) -> str:
        """Key identifying this dose for the same-minute guard."""
        e = self.entry
        return f"{self.patient_id}:{e.name}:{e.scheduled_date.isoformat()}:{e.time_label}"


class ScheduleStore(ABC):
    """Read-only query surface over patient medication records."""

    @abstractmethod
    async def find_matching_entries(
        self, on_date: date, at_time: time
    ) -> list[ScheduledDose]:
        """Return every (patient, entry) due at exactly ``on_date`` ``at_time``.

        Order is the store's iteration order (patient, then list position)
        and must be stable between calls.
        """
        ...


# ---------------------------------------------------------------------------
# Device transport
# ---------------------------------------------------------------------------


class LinkState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class TransportError(Exception):
    """Raised by a transport when the device cannot be reached or written to."""


class DeviceConnection(ABC):
    """An open, message-oriented connection to the actuator."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Write one text frame. Raises TransportError on failure."""
        ...

    @abstractmethod
    async def recv(self) -> str | bytes:
        """Wait for the next inbound frame.

        Raises:
            TransportError: When the connection is closed or broken.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class DeviceTransport(ABC):
    """Factory for connections to one fixed device endpoint."""

    url: str = ""

    @abstractmethod
    async def open(self) -> DeviceConnection:
        """Open a new connection.

        Raises:
            TransportError: If the device is unreachable.
        """
        ...
