import asyncio

import pytest

from twinbridge.protocols import IotHubRegistry
from twinbridge.services import StatusGate
from tests.fakes import FakeClock, FakeRegistry, FakeResponse, FakeSession

HUB = "HostName=my-hub.azure-devices.net;SharedAccessKeyName=iothubowner;SharedAccessKey=a2V5"


async def test_unknown_devices_are_not_disabled(gate):
    await gate.refresh()
    assert gate.is_disabled("never-seen") is False


async def test_snapshot_marks_anything_not_enabled_as_disabled(clock):
    registry = FakeRegistry({"A": "enabled", "B": "disabled"})
    gate = StatusGate(registry, 60, clock=clock)
    await gate.refresh()
    assert gate.snapshot == {"A": False, "B": True}


async def test_refresh_is_rate_limited_by_interval(gate, registry, clock):
    assert await gate.refresh_if_stale() is True
    clock.advance(10)
    assert await gate.refresh_if_stale() is False
    assert registry.list_calls == 1

    clock.advance(51)
    assert await gate.refresh_if_stale() is True
    assert registry.list_calls == 2


async def test_explicit_now_is_honoured(gate, registry):
    await gate.refresh_if_stale(now=0)
    await gate.refresh_if_stale(now=10)
    await gate.refresh_if_stale(now=60)
    assert registry.list_calls == 1
    await gate.refresh_if_stale(now=60.5)
    assert registry.list_calls == 2


async def test_non_positive_or_missing_interval_always_refreshes():
    for interval in (0, -5, None):
        registry = FakeRegistry()
        gate = StatusGate(registry, interval, clock=FakeClock())
        for _ in range(3):
            await gate.refresh_if_stale()
        assert registry.list_calls == 3


async def test_listing_failure_keeps_previous_snapshot(clock):
    registry = FakeRegistry({"D": "disabled"})
    gate = StatusGate(registry, 60, clock=clock)
    await gate.refresh()

    registry.fail_listing = True
    registry.statuses["D"] = "enabled"
    clock.advance(61)
    await gate.refresh_if_stale()

    assert registry.list_calls == 2
    assert gate.is_disabled("D") is True


@pytest.mark.parametrize("body", [
    "<html>gateway timeout</html>",
    '[{"status": "enabled"}]',
    '{"deviceId": "D"}',
])
async def test_malformed_listing_keeps_previous_snapshot(clock, body):
    session = FakeSession(
        FakeResponse(200, '[{"deviceId": "D", "status": "disabled"}]'),
        FakeResponse(200, body),
    )
    gate = StatusGate(IotHubRegistry(HUB, session=session), 60, clock=clock)
    await gate.refresh()

    clock.advance(61)
    assert await gate.refresh_if_stale() is True

    assert len(session.requests) == 2
    assert gate.is_disabled("D") is True


async def test_disabled_set_is_replaced_wholesale(clock):
    registry = FakeRegistry({"A": "disabled", "B": "disabled"})
    gate = StatusGate(registry, None, clock=clock)
    await gate.refresh()
    registry.statuses = {"B": "enabled"}
    await gate.refresh()
    assert gate.snapshot == {"B": False}


async def test_concurrent_checks_share_one_listing():
    registry = FakeRegistry()
    gate = StatusGate(registry, 0, clock=FakeClock())
    await asyncio.gather(*(gate.refresh_if_stale() for _ in range(5)))
    assert registry.list_calls == 1
