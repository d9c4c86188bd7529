"""Tests for StaticHostPlatform admission checks."""

import pytest

from streamsync.domain.entities import AdmissionConstraints
from streamsync.infrastructure.platform import StaticHostPlatform

WIFI = AdmissionConstraints.for_network(True)
ANY_NETWORK = AdmissionConstraints.for_network(False)
ANY_NETWORK_ANY_BATTERY = AdmissionConstraints.for_network(False, battery_not_low=False)


class TestStaticHostPlatform:
    """Test StaticHostPlatform."""

    @pytest.mark.parametrize(
        ("state", "constraints", "expected"),
        [
            ({}, WIFI, True),
            ({"unmetered": False}, WIFI, False),
            ({"unmetered": False}, ANY_NETWORK, True),
            ({"connected": False}, ANY_NETWORK_ANY_BATTERY, False),
            ({"battery_low": True}, ANY_NETWORK, False),
            ({"battery_low": True}, ANY_NETWORK_ANY_BATTERY, True),
        ],
    )
    async def test_constraints(self, state, constraints, expected):
        """Test admission against host state."""
        host = StaticHostPlatform(**state)
        assert await host.constraints_satisfied(constraints) is expected

    async def test_update_keeps_unspecified_values(self):
        """Test update() only changes what is passed."""
        host = StaticHostPlatform()
        host.update(unmetered=False)
        assert host.connected is True
        assert host.unmetered is False
        assert host.battery_low is False

        host.update(unmetered=True, battery_low=True)
        assert await host.constraints_satisfied(WIFI) is False
        host.update(battery_low=False)
        assert await host.constraints_satisfied(WIFI) is True
