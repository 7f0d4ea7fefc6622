"""Turn a due medication into a timed LED pulse on the box.

The device toggles a channel each time it receives that channel's token, so
a pulse is the same token sent twice: once now, once ``off_delay`` seconds
later.  Overlapping pulses on one channel are not merged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from src.actuator.link import DeviceLink

logger = logging.getLogger("neurolink.actuator.dispatcher")

DEFAULT_OFF_DELAY = 12.0


@dataclass
class PulseHandle:
    """The scheduled off-send of one pulse.

    Nothing in the normal flow cancels a pulse; the handle exists so shutdown
    (and future edit/cancel features) can.

    Attributes:
        medication: Medication name that triggered the pulse.
        token:      Device token sent for both edges.
        on_sent:    Whether the on-edge reached the transport.
        off_sent:   Whether the off-edge reached the transport (None until it fires).
    """

    medication: str
    token: str
    on_sent: bool
    off_sent: bool | None = None
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)
    _cancelled: bool = field(default=False, repr=False)

    @property
    def channel(self) -> str:
        """Device channel the pulse drives; one token per channel."""
        return self.token

    @property
    def done(self) -> bool:
        return self.off_sent is not None or self._cancelled

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """Cancel the pending off-send. Returns False if it already fired."""
        if self.done:
            return False
        if self._timer is not None:
            self._timer.cancel()
        self._cancelled = True
        return True


class CommandDispatcher:
    """Map medication names to device tokens and send timed pulses.

    Usage::

        dispatcher = CommandDispatcher(link, {"Medicine 1": "LED1"})
        dispatcher.trigger("Medicine 1")   # LED1 now, LED1 again in 12s
    """

    def __init__(
        self,
        link: DeviceLink,
        channels: Mapping[str, str],
        off_delay: float = DEFAULT_OFF_DELAY,
    ) -> None:
        self._link = link
        self._channels = dict(channels)
        self.off_delay = off_delay
        self._pending: list[PulseHandle] = []

    def channel_for(self, name: str) -> str | None:
        return self._channels.get(name)

    def trigger(self, entry_name: str) -> PulseHandle | None:
        """Send the on-edge now and schedule the off-edge.

        Returns immediately without waiting for either send.

        Returns:
            The pulse handle, or None if the name has no channel.
        """
        token = self._channels.get(entry_name)
        if token is None:
            logger.debug("No channel mapped for medication %r, ignoring", entry_name)
            return None

        on_sent = self._link.send(token)
        pulse = PulseHandle(medication=entry_name, token=token, on_sent=on_sent)
        pulse._timer = asyncio.get_running_loop().call_later(
            self.off_delay, self._send_off, pulse
        )
        self._prune()
        self._pending.append(pulse)
        logger.info(
            "Pulse %s for %r (on %s, off in %.0fs)",
            token, entry_name, "sent" if on_sent else "dropped", self.off_delay,
        )
        return pulse

    def pending(self) -> list[PulseHandle]:
        """Return pulses whose off-edge has not fired yet."""
        self._prune()
        return list(self._pending)

    def cancel_all(self) -> int:
        """Cancel every pending off-edge. Used at shutdown only."""
        count = sum(1 for pulse in self._pending if pulse.cancel())
        self._pending.clear()
        return count

    def _send_off(self, pulse: PulseHandle) -> None:
        pulse.off_sent = self._link.send(pulse.token)
        pulse._timer = None
        logger.info(
            "Pulse %s for %r off (%s)",
            pulse.token, pulse.medication, "sent" if pulse.off_sent else "dropped",
        )

    def _prune(self) -> None:
        self._pending = [p for p in self._pending if not p.done]
