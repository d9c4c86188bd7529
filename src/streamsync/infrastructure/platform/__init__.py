"""Host platform adapters.

Hey future me - on a real device the OS job scheduler evaluates network and
battery. On a server there is no battery and the network is whatever it is, so
StaticHostPlatform just compares constraints against a state the host pushes
in (update()). Tests flip it to simulate "on cellular" or "battery low".
"""

import logging

from streamsync.domain.entities import AdmissionConstraints, NetworkRequirement
from streamsync.domain.ports import IHostPlatform

logger = logging.getLogger(__name__)


class StaticHostPlatform(IHostPlatform):
    """Admission against a host-reported network/battery state."""

    def __init__(
        self,
        connected: bool = True,
        unmetered: bool = True,
        battery_low: bool = False,
    ) -> None:
        self.connected = connected
        self.unmetered = unmetered
        self.battery_low = battery_low

    def update(
        self,
        connected: bool | None = None,
        unmetered: bool | None = None,
        battery_low: bool | None = None,
    ) -> None:
        """Apply a new host state. None keeps the current value."""
        if connected is not None:
            self.connected = connected
        if unmetered is not None:
            self.unmetered = unmetered
        if battery_low is not None:
            self.battery_low = battery_low
        logger.debug(
            f"Host state: connected={self.connected} unmetered={self.unmetered} "
            f"battery_low={self.battery_low}"
        )

    async def constraints_satisfied(self, constraints: AdmissionConstraints) -> bool:
        if not self.connected:
            return False
        if constraints.network is NetworkRequirement.UNMETERED and not self.unmetered:
            return False
        if constraints.battery_not_low and self.battery_low:
            return False
        return True


__all__ = ["StaticHostPlatform"]
