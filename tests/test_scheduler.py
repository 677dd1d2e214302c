"""Tests for the periodic telemetry scheduler."""

import asyncio
import json
import logging

import pytest

from rmsimulator.errors import SchedulerClosedError, StoreError
from rmsimulator.lease import AbsentOrExpired, LeaseRecord
from rmsimulator.manager import IdentityLeaseManager
from rmsimulator.scheduler import TelemetryScheduler
from rmsimulator.store import InMemoryLeaseStore
from rmsimulator.transport import DEFAULT_TOPIC


class ToggleStore(InMemoryLeaseStore):
    """In-memory store that can be switched into an unreachable state."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    async def conditional_put(self, record, precondition) -> bool:
        if self.fail:
            raise StoreError("table unavailable")
        return await super().conditional_put(record, precondition)


class BlippingStore(InMemoryLeaseStore):
    """In-memory store whose next acquisition write fails once."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_next_acquire = False

    async def conditional_put(self, record, precondition) -> bool:
        if self.fail_next_acquire and isinstance(precondition, AbsentOrExpired):
            self.fail_next_acquire = False
            raise StoreError("blip")
        return await super().conditional_put(record, precondition)


class HangingTransport:
    """Transport whose publish never completes."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.cancelled = False

    async def publish(self, topic: str, payload: bytes) -> None:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


async def _acquired_manager(store, clock, **kwargs) -> IdentityLeaseManager:
    manager = IdentityLeaseManager(store, renew_interval_ms=30000, clock=clock, **kwargs)
    await manager.acquire()
    return manager


@pytest.mark.asyncio
async def test_end_to_end_single_tick(clock, transport) -> None:
    """Test acquire then one tick: one well-formed publish and an extended lease."""
    store = InMemoryLeaseStore()
    manager = IdentityLeaseManager(store, renew_interval_ms=30000, start_id=1000, clock=clock)

    identity = await manager.acquire()
    assert identity.device_id == 1000
    assert identity.lease_expiry_ms == clock.now + 120000

    scheduler = TelemetryScheduler(manager, transport, interval_ms=30000)
    clock.advance(30000)
    await scheduler.tick()

    record = await store.get(1000)
    assert record.lease_expiry_ms == clock.now + 120000
    assert record.lease_expiry_ms > identity.lease_expiry_ms
    assert manager.identity.lease_expiry_ms == record.lease_expiry_ms

    assert len(transport.published) == 1
    topic, payload = transport.published[0]
    assert topic == DEFAULT_TOPIC
    body = json.loads(payload)
    assert body["deviceType"] == "RM_Accelerator"
    assert body["deviceId"] == 1000
    assert set(body) == {"deviceType", "deviceId", "pressure", "oilLevel", "temperature"}
    assert scheduler.ticks == 1


@pytest.mark.asyncio
async def test_tick_publish_failure_still_renews(clock, transport, caplog) -> None:
    """Test that a failed publish is logged and does not block renewal."""
    store = InMemoryLeaseStore()
    manager = await _acquired_manager(store, clock)
    before = manager.identity
    transport.fail = True
    scheduler = TelemetryScheduler(manager, transport, interval_ms=30000)

    with caplog.at_level(logging.WARNING):
        await scheduler.tick()

    assert transport.published == []
    assert manager.identity.lease_expiry_ms > before.lease_expiry_ms
    assert "send message" in caplog.text


@pytest.mark.asyncio
async def test_tick_renew_failure_still_publishes(clock, transport, caplog) -> None:
    """Test that a failed renewal is logged and does not block publishing."""
    store = ToggleStore()
    manager = await _acquired_manager(store, clock)
    before = manager.identity
    store.fail = True
    scheduler = TelemetryScheduler(manager, transport, interval_ms=30000)

    with caplog.at_level(logging.ERROR):
        await scheduler.tick()

    assert len(transport.published) == 1
    assert manager.identity == before
    assert "device ttl" in caplog.text


@pytest.mark.asyncio
async def test_tick_publishes_under_reacquired_identity(clock, transport) -> None:
    """Test that after a lost lease the next tick publishes under the new id."""
    store = InMemoryLeaseStore()
    manager = await _acquired_manager(store, clock)
    scheduler = TelemetryScheduler(manager, transport, interval_ms=30000)

    clock.advance(120000)
    await store.seed(LeaseRecord(device_id=1000, lease_expiry_ms=clock.now + 120000))
    await scheduler.tick()
    await scheduler.tick()

    ids = [json.loads(payload)["deviceId"] for _, payload in transport.published]
    assert ids == [1000, 1001]


@pytest.mark.asyncio
async def test_tick_without_identity_skips_publish(transport) -> None:
    """Test that nothing is published before an identity is held."""
    manager = IdentityLeaseManager(InMemoryLeaseStore(), renew_interval_ms=30000)
    scheduler = TelemetryScheduler(manager, transport, interval_ms=30000)

    await scheduler.tick()

    assert transport.published == []


@pytest.mark.asyncio
async def test_periodic_ticks(transport) -> None:
    """Test that the timer keeps ticking until stopped."""
    store = InMemoryLeaseStore()
    manager = IdentityLeaseManager(store, renew_interval_ms=20)
    await manager.acquire()

    async with TelemetryScheduler(manager, transport, interval_ms=20) as scheduler:
        assert scheduler.running
        await asyncio.sleep(0.15)

    assert not scheduler.running
    assert scheduler.ticks >= 3
    assert scheduler.ticks <= len(transport.published) <= scheduler.ticks + 1


@pytest.mark.asyncio
async def test_timer_survives_failures(transport) -> None:
    """Test that failing ticks do not stop the timer."""
    store = ToggleStore()
    manager = IdentityLeaseManager(store, renew_interval_ms=20)
    await manager.acquire()
    store.fail = True
    transport.fail = True

    scheduler = TelemetryScheduler(manager, transport, interval_ms=20)
    await scheduler.start()
    await asyncio.sleep(0.12)
    assert scheduler.running
    await scheduler.stop()

    assert scheduler.ticks >= 2


@pytest.mark.asyncio
async def test_stop_abandons_in_flight_tick(clock) -> None:
    """Test that stopping cancels a publish that never returns."""
    manager = await _acquired_manager(InMemoryLeaseStore(), clock)
    transport = HangingTransport()
    scheduler = TelemetryScheduler(manager, transport, interval_ms=10)

    await scheduler.start()
    await asyncio.wait_for(transport.started.wait(), 1.0)
    await asyncio.wait_for(scheduler.stop(), 1.0)

    assert transport.cancelled
    assert not scheduler.running


@pytest.mark.asyncio
async def test_first_tick_waits_one_interval(clock, transport) -> None:
    """Test that starting does not publish immediately."""
    manager = await _acquired_manager(InMemoryLeaseStore(), clock)
    scheduler = TelemetryScheduler(manager, transport, interval_ms=10_000)

    await scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert transport.published == []
    assert scheduler.ticks == 0


@pytest.mark.asyncio
async def test_start_after_stop(clock, transport) -> None:
    """Test that a stopped scheduler cannot be restarted."""
    manager = await _acquired_manager(InMemoryLeaseStore(), clock)
    scheduler = TelemetryScheduler(manager, transport, interval_ms=1000)
    await scheduler.start()
    await scheduler.stop()
    await scheduler.stop()

    with pytest.raises(SchedulerClosedError):
        await scheduler.start()


@pytest.mark.asyncio
async def test_custom_topic_and_legacy_oil_level(clock, transport) -> None:
    """Test that topic and oil level mode are passed through."""
    manager = await _acquired_manager(InMemoryLeaseStore(), clock)
    scheduler = TelemetryScheduler(
        manager, transport, interval_ms=1000, topic="fleet/rm", legacy_oil_level=True
    )

    await scheduler.tick()

    topic, payload = transport.published[0]
    assert topic == "fleet/rm"
    assert 100 <= json.loads(payload)["oilLevel"] < 199


def test_invalid_interval(transport) -> None:
    """Test that a non-positive interval is rejected."""
    manager = IdentityLeaseManager(InMemoryLeaseStore(), renew_interval_ms=30000)
    with pytest.raises(ValueError):
        TelemetryScheduler(manager, transport, interval_ms=0)


@pytest.mark.asyncio
async def test_failed_reacquire_is_retried_next_tick(clock, transport) -> None:
    """Test that a store failure while re-acquiring only skips ticks until a new id is claimed."""
    store = BlippingStore()
    manager = await _acquired_manager(store, clock)
    scheduler = TelemetryScheduler(manager, transport, interval_ms=30000)

    clock.advance(120000)
    await store.seed(LeaseRecord(device_id=1000, lease_expiry_ms=clock.now + 120000))
    store.fail_next_acquire = True

    await scheduler.tick()
    assert manager.identity is None

    await scheduler.tick()
    assert manager.identity.device_id == 1001

    for _ in range(3):
        await scheduler.tick()

    ids = [json.loads(payload)["deviceId"] for _, payload in transport.published]
    assert ids == [1000, 1001, 1001, 1001]
    assert (await store.get(1001)).lease_expiry_ms == manager.identity.lease_expiry_ms
