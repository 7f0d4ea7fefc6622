"""NeuroLink medication-time actuator link.

Lights the medication box LED for a medicine when one of its scheduled doses
comes due.  Runs autonomously once ``start_medicine_led()`` is called.

Core modules:
    base          — MedicationEntry, ScheduleStore / DeviceTransport ABCs, LinkState
    store         — Postgres and in-memory schedule accessors
    link          — Auto-reconnecting device link state machine
    transport     — WebSocket transport to the box
    dispatcher    — Medication name → channel token, timed on/off pulses
    ticker        — Once-a-minute schedule matcher
    dedup         — Same-minute guard for fired doses
    config_loader — Load/validate actuator_config.yaml
    runtime       — Process-wide wiring and the start_medicine_led() entry point
"""

from src.actuator.base import (
    LinkState,
    MedicationEntry,
    ScheduledDose,
    ScheduleStore,
)
from src.actuator.config_loader import ActuatorConfig, get_actuator_config
from src.actuator.runtime import get_runtime, start_medicine_led

__all__ = [
    "LinkState",
    "MedicationEntry",
    "ScheduledDose",
    "ScheduleStore",
    "ActuatorConfig",
    "get_actuator_config",
    "get_runtime",
    "start_medicine_led",
]
