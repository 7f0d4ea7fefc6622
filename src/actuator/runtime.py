"""Process-wide wiring for the actuator link.

``start_medicine_led()`` is the single entry point: it builds the store,
device link, dispatcher and ticker, issues the first connect attempt and
starts ticking.  There is no pause or stop control; ``shutdown()`` exists
for the application lifespan hook only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from src.actuator.base import DeviceTransport, ScheduleStore
from src.actuator.config_loader import ActuatorConfig, get_actuator_config
from src.actuator.dispatcher import CommandDispatcher
from src.actuator.link import DeviceLink
from src.actuator.store import InMemoryScheduleStore, PostgresScheduleStore
from src.actuator.ticker import ScheduleTicker
from src.actuator.transport import WebSocketTransport
from src.config import Settings, get_settings
from src.services.database import pool_ready

logger = logging.getLogger("neurolink.actuator")


@dataclass
class ActuatorRuntime:
    store: ScheduleStore
    link: DeviceLink
    dispatcher: CommandDispatcher
    ticker: ScheduleTicker

    def status(self) -> dict[str, Any]:
        last = self.ticker.last_result
        return {
            "device": self.link.snapshot(),
            "ticker": {
                "running": self.ticker.running,
                "interval_seconds": self.ticker.interval,
                "ticks": self.ticker.tick_count,
                "last_tick_at": last.ran_at.isoformat() if last else None,
                "last_tick_error": last.error if last else None,
            },
            "pending_pulses": len(self.dispatcher.pending()),
        }

    async def shutdown(self) -> None:
        await self.ticker.stop()
        cancelled = self.dispatcher.cancel_all()
        if cancelled:
            logger.info("Dropped %d pending off-pulses at shutdown", cancelled)
        await self.link.close()


_runtime: ActuatorRuntime | None = None


def build_runtime(
    settings: Settings | None = None,
    config: ActuatorConfig | None = None,
    store: ScheduleStore | None = None,
    transport: DeviceTransport | None = None,
) -> ActuatorRuntime:
    """Assemble the components without starting anything."""
    s = settings or get_settings()
    cfg = config or get_actuator_config()

    if store is None:
        if pool_ready():
            store = PostgresScheduleStore(s.medication_table)
        else:
            logger.warning("No database pool; using an empty in-memory schedule store")
            store = InMemoryScheduleStore()
    if transport is None:
        transport = WebSocketTransport(s.device_url, open_timeout=s.device_open_timeout_seconds)

    link = DeviceLink(transport, reconnect_delay=cfg.timing.reconnect_delay_seconds)
    dispatcher = CommandDispatcher(
        link, cfg.channels, off_delay=cfg.timing.pulse_off_delay_seconds
    )
    ticker = ScheduleTicker(store, dispatcher, interval=cfg.timing.tick_interval_seconds)
    return ActuatorRuntime(store=store, link=link, dispatcher=dispatcher, ticker=ticker)


def start_medicine_led(
    settings: Settings | None = None,
    config: ActuatorConfig | None = None,
    store: ScheduleStore | None = None,
    transport: DeviceTransport | None = None,
) -> ActuatorRuntime:
    """Connect to the box and start the ticker. Must run inside the event loop.

    Calling it again returns the already running instance.
    """
    global _runtime
    if _runtime is not None:
        return _runtime

    runtime = build_runtime(settings, config, store, transport)
    runtime.link.connect()
    runtime.ticker.start()
    _runtime = runtime
    logger.info("Medicine LED link started (device %s)", runtime.link.snapshot()["url"])
    return runtime


def get_runtime() -> ActuatorRuntime | None:
    return _runtime


async def shutdown_medicine_led() -> None:
    global _runtime
    runtime, _runtime = _runtime, None
    if runtime is not None:
        await runtime.shutdown()
