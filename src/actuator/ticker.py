"""Once-a-minute schedule matcher driving the actuator link.

Every tick:
1. Read the local wall clock, truncated to the minute
2. Ask the schedule store for entries due at exactly that date + minute
3. Trigger one pulse per due entry, in store order

Schedule data only has minute resolution, so matching is exact equality and
one tick per minute is enough.  Ticks are scheduled against the loop's
monotonic clock so they do not drift.  A minute the process was not running
for is simply missed; there is no catch-up.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from src.actuator.base import ScheduleStore
from src.actuator.dedup import FiredDoseCache, occurrence_key
from src.actuator.dispatcher import CommandDispatcher

logger = logging.getLogger("neurolink.actuator.ticker")

DEFAULT_TICK_INTERVAL = 60.0


@dataclass
class TickResult:
    """Outcome of one tick.

    Attributes:
        ran_at:            Wall-clock time the tick matched against.
        matched:           Due entries returned by the store.
        triggered:         Pulses started.
        skipped_unknown:   Entries whose medication has no channel.
        skipped_duplicate: Entries already fired earlier this minute.
        error:             Store error message if the tick was abandoned.
    """

    ran_at: datetime
    matched: int = 0
    triggered: int = 0
    skipped_unknown: int = 0
    skipped_duplicate: int = 0
    error: str | None = None
    medications: list[str] = field(default_factory=list)


class ScheduleTicker:
    """Periodic matcher between the schedule store and the dispatcher.

    Args:
        store:      Read-only schedule accessor.
        dispatcher: Pulse dispatcher.
        interval:   Seconds between ticks.
        clock:      Returns the current local wall-clock time (naive).
    """

    def __init__(
        self,
        store: ScheduleStore,
        dispatcher: CommandDispatcher,
        interval: float = DEFAULT_TICK_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self.interval = interval
        self._clock = clock
        self._fired = FiredDoseCache()
        self._task: asyncio.Task | None = None
        self.last_result: TickResult | None = None
        self.tick_count = 0

    async def tick(self, now: datetime | None = None) -> TickResult:
        """Run one match-and-dispatch pass. Never raises."""
        now = now or self._clock()
        today = now.date()
        minute = now.time().replace(second=0, microsecond=0)
        result = TickResult(ran_at=now)
        self.tick_count += 1

        try:
            doses = await self._store.find_matching_entries(today, minute)
        except Exception as exc:
            logger.exception(
                "Schedule query for %s %s failed; skipping this tick",
                today, minute.strftime("%H:%M"),
            )
            result.error = f"{type(exc).__name__}: {exc}"
            self.last_result = result
            return result

        self._fired.prune_before(today)
        result.matched = len(doses)
        occurrences: Counter[str] = Counter()

        for dose in doses:
            base_key = dose.fired_key
            key = occurrence_key(base_key, occurrences[base_key])
            occurrences[base_key] += 1
            if self._fired.is_seen(today, key):
                logger.debug("Dose %s already fired this minute", key)
                result.skipped_duplicate += 1
                continue

            try:
                pulse = self._dispatcher.trigger(dose.entry.name)
            except Exception:
                logger.exception("Dispatch failed for %s", base_key)
                continue

            self._fired.mark_seen(today, key)
            if pulse is None:
                result.skipped_unknown += 1
            else:
                result.triggered += 1
                result.medications.append(dose.entry.name)

        if result.matched:
            logger.info(
                "Tick %s %s: %d due, %d triggered, %d unmapped, %d already fired",
                today, minute.strftime("%H:%M"), result.matched, result.triggered,
                result.skipped_unknown, result.skipped_duplicate,
            )
        self.last_result = result
        return result

    async def run(self) -> None:
        """Tick now, then every ``interval`` seconds until cancelled."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        slot = 0
        logger.info("Schedule ticker started (every %.0fs)", self.interval)
        while True:
            await self.tick()
            slot += 1
            behind = loop.time() - (started + slot * self.interval)
            if behind > 0:
                missed = int(behind // self.interval) + 1
                logger.warning("Tick overran by %.1fs; skipping %d slot(s)", behind, missed)
                slot += missed
            await asyncio.sleep(max(0.0, started + slot * self.interval - loop.time()))

    def start(self) -> asyncio.Task:
        """Start ``run()`` as a background task (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Schedule ticker stopped after %d ticks", self.tick_count)
