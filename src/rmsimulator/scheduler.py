"""Periodic telemetry publishing and lease renewal."""

import asyncio
import logging
import random
import time

from rmsimulator.errors import SchedulerClosedError
from rmsimulator.lease import Identity
from rmsimulator.manager import IdentityLeaseManager
from rmsimulator.telemetry import encode_payload, generate_reading
from rmsimulator.transport import DEFAULT_TOPIC, Transport


class TelemetryScheduler:
    """
    Publishes a synthetic reading and renews the device lease on every tick.

    The two actions of a tick run concurrently and are joined before the next
    tick is scheduled. Failures in either are logged and the timer keeps going.
    """

    def __init__(
        self,
        manager: IdentityLeaseManager,
        transport: Transport,
        *,
        interval_ms: int,
        topic: str = DEFAULT_TOPIC,
        rng: random.Random | None = None,
        legacy_oil_level: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            manager: Lease manager holding an acquired identity
            transport: Where payloads are published
            interval_ms: Tick period in milliseconds
            topic: Topic payloads are published to
            rng: Random source for readings
            legacy_oil_level: Generate oil levels the way older feeds did
            logger: Logger to report through
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._manager = manager
        self._transport = transport
        self._interval = interval_ms / 1000
        self._topic = topic
        self._rng = rng or random.Random()
        self._legacy_oil_level = legacy_oil_level
        self._logger = logger or logging.getLogger(__name__)
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the periodic timer. The first tick fires one interval from now."""
        if self._closed:
            raise SchedulerClosedError("Cannot start a stopped scheduler")
        if self._task is None:
            self._logger.info("Starting RM Device Simulator...")
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop the timer, abandoning any tick in progress."""
        if self._closed:
            return
        self._closed = True

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "TelemetryScheduler":
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()

    async def tick(self) -> None:
        """Run one publish and one renewal, concurrently."""
        identity = self._manager.identity
        async with asyncio.TaskGroup() as tg:
            if identity is not None:
                tg.create_task(self._publish(identity))
            else:
                self._logger.warning("No device identity held; skipping telemetry this tick")
            tg.create_task(self._renew())
        self.ticks += 1

    async def _publish(self, identity: Identity) -> None:
        reading = generate_reading(self._rng, legacy_oil_level=self._legacy_oil_level)
        payload = encode_payload(identity.device_id, reading)
        try:
            await self._transport.publish(self._topic, payload)
        except Exception as e:
            self._logger.warning(
                "Error occurred while attempting to send message to configured topic: %s", e
            )
            return
        self._logger.debug("Message successfully sent to configured topic.")

    async def _renew(self) -> None:
        try:
            await self._manager.keep_alive()
        except Exception as e:
            self._logger.error("Error occurred while attempting to update device ttl: %s", e)

    async def _loop(self) -> None:
        """Tick on a fixed monotonic schedule, skipping deadlines missed by slow ticks."""
        deadline = time.monotonic() + self._interval
        while not self._closed:
            await asyncio.sleep(max(0.0, deadline - time.monotonic()))
            await self.tick()

            deadline += self._interval
            now = time.monotonic()
            if deadline < now:
                missed = int((now - deadline) // self._interval) + 1
                self._logger.warning("Tick overran its interval; skipping %d tick(s)", missed)
                deadline += missed * self._interval
