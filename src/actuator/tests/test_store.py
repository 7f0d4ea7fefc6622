"""Tests for schedule store accessors and MedicationEntry parsing."""

from __future__ import annotations

from datetime import date, datetime, time
from unittest.mock import AsyncMock, patch

import pytest

from src.actuator.base import MedicationEntry, ScheduledDose, parse_schedule_time
from src.actuator.store import InMemoryScheduleStore, PostgresScheduleStore
from src.actuator.tests.conftest import TEST_DATE, TEST_PATIENT_ID, TEST_TIME, make_entry


class TestMedicationEntry:
    def test_from_record_with_strings(self) -> None:
        entry = MedicationEntry.from_record(
            {
                "name": "Medicine 1",
                "scheduled_date": "2025-11-15",
                "scheduled_time": "08:30",
                "created_by": "caregiver-7",
            }
        )
        assert entry.scheduled_date == TEST_DATE
        assert entry.scheduled_time == TEST_TIME
        assert entry.created_by == "caregiver-7"
        assert entry.created_at is None

    def test_from_record_with_native_types(self) -> None:
        created = datetime(2025, 11, 1, 9, 0)
        entry = MedicationEntry.from_record(
            {
                "name": "Medicine 2",
                "scheduled_date": date(2025, 11, 15),
                "scheduled_time": time(8, 30, 45),
                "created_by": None,
                "created_at": created,
            }
        )
        assert entry.scheduled_time == time(8, 30)
        assert entry.created_by == ""
        assert entry.created_at == created

    @pytest.mark.parametrize("text", ["8:30", "08:30", "08:30:00", " 08:30 "])
    def test_parse_time_variants(self, text: str) -> None:
        assert parse_schedule_time(text) == time(8, 30)

    @pytest.mark.parametrize(
        "text",
        [
            "", "0830", "ab:cd", "25:00", "08:61",
            "8:30 PM", "08:30pm", "08:305", "08:3", "08:30junk", "08:30:5",
        ],
    )
    def test_parse_time_rejects_garbage(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_schedule_time(text)

    def test_is_due_is_exact(self) -> None:
        entry = make_entry("Medicine 1")
        assert entry.is_due(TEST_DATE, time(8, 30, 59))
        assert not entry.is_due(TEST_DATE, time(8, 31))
        assert not entry.is_due(date(2025, 11, 16), time(8, 30))

    def test_created_at_not_used_for_matching(self) -> None:
        a = make_entry("Medicine 1")
        b = MedicationEntry(
            name="Medicine 1",
            scheduled_date=TEST_DATE,
            scheduled_time=TEST_TIME,
            created_at=datetime(2025, 11, 15, 8, 30),
        )
        assert a.is_due(TEST_DATE, TEST_TIME) == b.is_due(TEST_DATE, TEST_TIME)

    def test_fired_key(self) -> None:
        dose = ScheduledDose(TEST_PATIENT_ID, make_entry("Medicine 1"))
        assert dose.fired_key == f"{TEST_PATIENT_ID}:Medicine 1:2025-11-15:08:30"


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_returns_matches_in_insertion_order(self) -> None:
        store = InMemoryScheduleStore()
        store.add_entry("p2", make_entry("Medicine 2"))
        store.add_entry("p1", make_entry("Medicine 1"))
        store.add_entry("p2", make_entry("Medicine 1", at=time(9, 0)))
        store.add_entry("p2", make_entry("Medicine 1"))

        due = await store.find_matching_entries(TEST_DATE, TEST_TIME)
        assert [(d.patient_id, d.entry.name) for d in due] == [
            ("p2", "Medicine 2"),
            ("p2", "Medicine 1"),
            ("p1", "Medicine 1"),
        ]

    @pytest.mark.asyncio
    async def test_query_does_not_mutate(self) -> None:
        store = InMemoryScheduleStore()
        store.add_entry(TEST_PATIENT_ID, make_entry("Medicine 1"))
        await store.find_matching_entries(TEST_DATE, TEST_TIME)
        await store.find_matching_entries(TEST_DATE, TEST_TIME)
        assert len(store) == 1
        assert store.entries_for(TEST_PATIENT_ID) == [make_entry("Medicine 1")]

    def test_entries_for_unknown_patient(self) -> None:
        assert InMemoryScheduleStore().entries_for("nobody") == []


class TestPostgresStore:
    def test_rejects_unsafe_table_name(self) -> None:
        with pytest.raises(ValueError):
            PostgresScheduleStore("medication_entries; DROP TABLE users")

    def test_accepts_schema_qualified_table(self) -> None:
        PostgresScheduleStore("care.medication_entries")

    @pytest.mark.asyncio
    async def test_query_parameters_and_mapping(self) -> None:
        rows = [
            {
                "patient_id": "p1",
                "name": "Medicine 1",
                "scheduled_date": TEST_DATE,
                "scheduled_time": "08:30",
                "created_by": "c1",
                "created_at": None,
            },
            {
                "patient_id": "p1",
                "name": "Medicine 2",
                "scheduled_date": TEST_DATE,
                "scheduled_time": time(8, 30),
                "created_by": "c1",
                "created_at": None,
            },
        ]
        fetch = AsyncMock(return_value=rows)
        with patch("src.actuator.store.database.fetch", fetch):
            due = await PostgresScheduleStore().find_matching_entries(TEST_DATE, TEST_TIME)

        query, *args = fetch.call_args.args
        assert "FROM medication_entries" in query
        assert args == [TEST_DATE, "08:30"]
        assert [d.entry.name for d in due] == ["Medicine 1", "Medicine 2"]
        assert all(d.patient_id == "p1" for d in due)

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self) -> None:
        rows = [
            {
                "patient_id": "p1",
                "name": "Medicine 1",
                "scheduled_date": TEST_DATE,
                "scheduled_time": "not a time",
                "created_by": "c1",
                "created_at": None,
            },
            {
                "patient_id": "p1",
                "name": "Medicine 2",
                "scheduled_date": TEST_DATE,
                "scheduled_time": "8:30 PM",
                "created_by": "c1",
                "created_at": None,
            },
            {
                "patient_id": "p2",
                "name": "Medicine 2",
                "scheduled_date": "2025-11-15",
                "scheduled_time": "08:30",
                "created_by": "c1",
                "created_at": None,
            },
        ]
        with patch("src.actuator.store.database.fetch", AsyncMock(return_value=rows)):
            due = await PostgresScheduleStore().find_matching_entries(TEST_DATE, TEST_TIME)
        assert [d.patient_id for d in due] == ["p2"]

    @pytest.mark.asyncio
    async def test_database_errors_propagate(self) -> None:
        with patch(
            "src.actuator.store.database.fetch", AsyncMock(side_effect=OSError("refused"))
        ):
            with pytest.raises(OSError):
                await PostgresScheduleStore().find_matching_entries(TEST_DATE, TEST_TIME)
