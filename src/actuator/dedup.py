"""Same-minute guard for fired doses.

The ticker runs once a minute and matches on exact minutes, so in steady
state every dose fires once.  A drifted tick, an overlapping tick or a
clock stepped backwards can show the same minute twice; this cache makes
the second sighting a no-op for the life of the process.

Keys come from ``ScheduledDose.fired_key`` plus an occurrence suffix, so
two identical entries in one patient's list still fire twice.
"""

from __future__ import annotations

import logging
from datetime import date

logger = logging.getLogger("neurolink.actuator.dedup")


def occurrence_key(base_key: str, occurrence: int) -> str:
    """Suffix a dose key with its position among identical doses in one tick."""
    return f"{base_key}#{occurrence}"


class FiredDoseCache:
    """In-process record of doses already dispatched, bucketed by dose date.

    Usage::

        cache = FiredDoseCache()
        if not cache.is_seen(day, key):
            cache.mark_seen(day, key)
            # dispatch
    """

    def __init__(self) -> None:
        self._seen: dict[date, set[str]] = {}

    def is_seen(self, day: date, key: str) -> bool:
        return key in self._seen.get(day, ())

    def mark_seen(self, day: date, key: str) -> None:
        self._seen.setdefault(day, set()).add(key)

    def prune_before(self, day: date) -> int:
        """Forget every bucket older than ``day``. Returns keys removed."""
        stale = [d for d in self._seen if d < day]
        removed = sum(len(self._seen.pop(d)) for d in stale)
        if removed:
            logger.debug("Pruned %d fired-dose keys older than %s", removed, day)
        return removed

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return sum(len(keys) for keys in self._seen.values())
