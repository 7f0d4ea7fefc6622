"""Load, validate, and hot-reload the actuator link configuration.

The config lives in ``actuator_config.yaml`` alongside this module.  At
startup it is loaded once and cached.  Call ``reload_actuator_config()`` to
re-read from disk after an edit.

Usage::

    from src.actuator.config_loader import get_actuator_config

    config = get_actuator_config()
    config.channel_for("Medicine 1")       # "LED1"
    config.timing.pulse_off_delay_seconds  # 12.0
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("neurolink.actuator.config")

_CONFIG_PATH = Path(__file__).parent / "actuator_config.yaml"


@dataclass
class TimingConfig:
    """Fixed delays used by the ticker, link and dispatcher (seconds)."""

    tick_interval_seconds: float = 60.0
    reconnect_delay_seconds: float = 5.0
    pulse_off_delay_seconds: float = 12.0


@dataclass
class ActuatorConfig:
    """Complete, validated actuator configuration.

    Attributes:
        version:  Config schema version string.
        timing:   Tick, reconnect and pulse delays.
        channels: Medication name → device token.
    """

    version: str
    timing: TimingConfig
    channels: dict[str, str]
    _raw: dict = field(default_factory=dict, repr=False)

    def channel_for(self, name: str) -> str | None:
        """Return the device token for a medication name, or None if unmapped."""
        return self.channels.get(name)


class ConfigValidationError(ValueError):
    """Raised when actuator_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Actuator config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> ActuatorConfig:
    """Validate the raw YAML dict and construct an ActuatorConfig.

    All problems are collected before raising so one edit can fix them all.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []
    version = str(raw.get("version", "1.0"))

    # ── Timing ──
    timing_raw = raw.get("timing") or {}
    if not isinstance(timing_raw, dict):
        errors.append("'timing' must be a mapping")
        timing_raw = {}
    defaults = TimingConfig()
    values: dict[str, float] = {}
    for key in ("tick_interval_seconds", "reconnect_delay_seconds", "pulse_off_delay_seconds"):
        val: Any = timing_raw.get(key, getattr(defaults, key))
        try:
            num = float(val)
        except (TypeError, ValueError):
            errors.append(f"timing.{key} must be a number, got {val!r}")
            continue
        if num <= 0:
            errors.append(f"timing.{key} = {num} must be positive")
        values[key] = num
    timing = TimingConfig(**values) if len(values) == 3 else defaults

    # ── Channels ──
    channels_raw = raw.get("channels")
    channels: dict[str, str] = {}
    if not channels_raw:
        errors.append("'channels' section is missing or empty")
    elif not isinstance(channels_raw, dict):
        errors.append("'channels' must be a mapping of medication name→token")
    else:
        for name, token in channels_raw.items():
            if not isinstance(token, str) or not token.strip():
                errors.append(f"channels.{name} must be a non-empty string, got {token!r}")
                continue
            channels[str(name)] = token.strip()

    if errors:
        raise ConfigValidationError(
            f"actuator_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    tokens = list(channels.values())
    if len(set(tokens)) != len(tokens):
        logger.warning("Several medications share one device channel: %s", channels)

    return ActuatorConfig(version=version, timing=timing, channels=channels, _raw=raw)


def load_actuator_config(path: Path | None = None) -> ActuatorConfig:
    """Load and validate the actuator config from disk.

    Args:
        path: Override path to YAML. Uses the bundled actuator_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info(
        "Loaded actuator config v%s from %s (%d channels)",
        config.version, target, len(config.channels),
    )
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: ActuatorConfig | None = None
_config_lock = threading.Lock()


def get_actuator_config() -> ActuatorConfig:
    """Return the global ActuatorConfig singleton, loading it on first call.

    Thread-safe.  Use ``reload_actuator_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_actuator_config()
    return _config


def reload_actuator_config(path: Path | None = None) -> ActuatorConfig:
    """Reload the actuator config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.
    Components already running keep the values they were built with; the new
    config applies to the next ``start_medicine_led()``.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_actuator_config(path)
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded actuator config: %s → %s", old_version, new_config.version)
    return new_config
