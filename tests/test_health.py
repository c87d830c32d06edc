from __future__ import annotations

import unittest

from fakes import FakeLoadTester, quiet_logger
from loadwatch.errors import ConnectivityError
from loadwatch.health import HealthMonitor
from loadwatch.models import HealthState


class HealthMonitorTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.client = FakeLoadTester()
        self.health = HealthMonitor(self.client, quiet_logger())

    async def test_defaults_to_unhealthy(self) -> None:
        self.assertFalse(self.health.healthy)

    async def test_up_is_case_insensitive(self) -> None:
        self.client.health_status = "up"
        state = await self.health.probe()
        self.assertEqual(state, HealthState(healthy=True))
        self.assertTrue(self.health.healthy)

    async def test_other_status_is_unhealthy(self) -> None:
        self.client.health_status = "DOWN"
        state = await self.health.probe()
        self.assertFalse(state.healthy)
        self.assertIn("DOWN", state.reason)

    async def test_transport_failure_never_raises(self) -> None:
        self.client.health_error = ConnectivityError("GET /health timed out after 1.0s")
        state = await self.health.probe()
        self.assertFalse(state.healthy)
        self.assertIn("timed out", state.reason)

    async def test_every_probe_is_published(self) -> None:
        seen: list[bool] = []
        self.health.state.subscribe(lambda state: seen.append(state.healthy), replay=False)
        await self.health.probe()
        self.client.health_status = "DOWN"
        await self.health.probe()
        await self.health.probe()
        self.assertEqual(seen, [True, False, False])

    async def test_degrade_only_when_healthy(self) -> None:
        seen: list[HealthState] = []
        self.health.state.subscribe(seen.append, replay=False)
        self.health.degrade("ignored while already down")
        await self.health.probe()
        self.health.degrade("poll failed")
        self.assertEqual([state.healthy for state in seen], [True, False])
        self.assertEqual(seen[-1].reason, "poll failed")


if __name__ == "__main__":
    unittest.main()
