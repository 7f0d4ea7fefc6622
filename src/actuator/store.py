"""Schedule store accessors.

Two implementations of ScheduleStore:

    PostgresScheduleStore — reads the caregiving backend's medication table
                            through the shared asyncpg pool.
    InMemoryScheduleStore — process-local patient → entries map, used when no
                            database is configured and in tests.

Both are read-only from the ticker's point of view.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from datetime import date, time

from src.actuator.base import MedicationEntry, ScheduledDose, ScheduleStore
from src.services import database

logger = logging.getLogger("neurolink.actuator.store")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class PostgresScheduleStore(ScheduleStore):
    """Query due entries from the ``medication_entries`` table.

    Expected columns: patient_id, position, name, scheduled_date,
    scheduled_time, created_by, created_at.  ``scheduled_time`` may be a
    ``time`` column or ``HH:MM`` text; both compare equal after formatting.
    """

    def __init__(self, table: str = "medication_entries") -> None:
        if not _IDENTIFIER.match(table):
            raise ValueError(f"Invalid table name {table!r}")
        self._query = (
            "SELECT patient_id, name, scheduled_date, scheduled_time, created_by, created_at "
            f"FROM {table} "
            "WHERE scheduled_date = $1 "
            "AND to_char(scheduled_time::time, 'HH24:MI') = $2 "
            "ORDER BY patient_id, position"
        )

    async def find_matching_entries(
        self, on_date: date, at_time: time
    ) -> list[ScheduledDose]:
        rows = await database.fetch(self._query, on_date, at_time.strftime("%H:%M"))
        doses: list[ScheduledDose] = []
        for row in rows:
            try:
                entry = MedicationEntry.from_record(row)
            except (KeyError, ValueError) as exc:
                logger.warning(
                    "Skipping malformed medication row for patient %s: %s",
                    row["patient_id"], exc,
                )
                continue
            doses.append(ScheduledDose(patient_id=str(row["patient_id"]), entry=entry))
        logger.debug(
            "Store query %s %s → %d due entries", on_date, at_time.strftime("%H:%M"), len(doses)
        )
        return doses


class InMemoryScheduleStore(ScheduleStore):
    """Process-local store with append-only medication lists.

    Usage::

        store = InMemoryScheduleStore()
        store.add_entry("patient-1", MedicationEntry("Medicine 1", d, t))
        due = await store.find_matching_entries(d, t)
    """

    def __init__(self) -> None:
        self._patients: OrderedDict[str, list[MedicationEntry]] = OrderedDict()

    def add_entry(self, patient_id: str, entry: MedicationEntry) -> None:
        """Append an entry to a patient's medication list."""
        self._patients.setdefault(patient_id, []).append(entry)

    def entries_for(self, patient_id: str) -> list[MedicationEntry]:
        return list(self._patients.get(patient_id, []))

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._patients.values())

    async def find_matching_entries(
        self, on_date: date, at_time: time
    ) -> list[ScheduledDose]:
        return [
            ScheduledDose(patient_id=patient_id, entry=entry)
            for patient_id, entries in self._patients.items()
            for entry in entries
            if entry.is_due(on_date, at_time)
        ]
