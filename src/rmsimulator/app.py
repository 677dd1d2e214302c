"""Startup glue: wires the store, lease manager, transport and scheduler together."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from botocore.exceptions import BotoCoreError

from rmsimulator.aws import DynamoDBLeaseStore, IotDataTransport, resolve_iot_endpoint
from rmsimulator.config import SimulatorConfig
from rmsimulator.errors import SimulatorError, StartupError
from rmsimulator.logs import get_logger
from rmsimulator.manager import IdentityLeaseManager
from rmsimulator.scheduler import TelemetryScheduler
from rmsimulator.store import LeaseStore
from rmsimulator.transport import Transport

T = TypeVar("T")

EndpointResolver = Callable[..., Awaitable[str]]


class Simulator:
    """
    One simulated device process.

    run() acquires an identity, resolves the publish endpoint, then runs the
    telemetry scheduler until request_stop() is called. Nothing is published
    until an identity is held.
    """

    def __init__(
        self,
        config: SimulatorConfig,
        *,
        store: LeaseStore | None = None,
        transport: Transport | None = None,
        endpoint_resolver: EndpointResolver = resolve_iot_endpoint,
        rng: random.Random | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the simulator.

        Args:
            config: Process configuration
            store: Lease store (a DynamoDB table from config by default)
            transport: Telemetry transport (IoT Core at the resolved endpoint
                by default; the endpoint is not resolved when given)
            endpoint_resolver: Looks up the IoT data endpoint for a region
            rng: Random source for readings
            logger: Logger to report through
        """
        self.config = config
        self._store = store
        self._transport = transport
        self._endpoint_resolver = endpoint_resolver
        self._rng = rng
        self._logger = logger or get_logger("rmsimulator", config.log_level)
        self._stop = asyncio.Event()
        self.manager: IdentityLeaseManager | None = None
        self.scheduler: TelemetryScheduler | None = None

    def request_stop(self) -> None:
        """Ask run() to shut down; safe to call from a signal handler."""
        self._stop.set()

    async def run(self) -> bool:
        """
        Run until stopped.

        Returns:
            False if startup failed and the scheduler never started, True otherwise
        """
        try:
            scheduler = await self._startup()
        except SimulatorError as e:
            self._logger.error("Error starting the engine. Error: %s", e)
            return False
        if scheduler is None:
            self._logger.info("Stopped before startup completed")
            return True

        try:
            await self._stop.wait()
        finally:
            await scheduler.stop()
            self._logger.info("Simulator stopped after %d tick(s)", scheduler.ticks)
        return True

    async def _startup(self) -> TelemetryScheduler | None:
        config = self.config
        store = self._store if self._store is not None else self._build_store()
        self.manager = IdentityLeaseManager(
            store,
            renew_interval_ms=config.interval_ms,
            start_id=config.start_id,
            on_lease_lost=config.on_lease_lost,
            logger=self._logger,
        )

        identity = await self._until_stopped(self.manager.acquire())
        if identity is None:
            return None

        transport = self._transport
        if transport is None:
            endpoint = await self._until_stopped(
                self._endpoint_resolver(config.region, timeout=config.store_timeout)
            )
            if endpoint is None:
                return None
            self._logger.info(
                "IoT Endpoint configured for the target region: %s: %s", config.region, endpoint
            )
            transport = self._build_transport(endpoint)

        self.scheduler = TelemetryScheduler(
            self.manager,
            transport,
            interval_ms=config.interval_ms,
            topic=config.topic,
            rng=self._rng,
            legacy_oil_level=config.legacy_oil_level,
            logger=self._logger,
        )
        await self.scheduler.start()
        return self.scheduler

    async def _until_stopped(self, aw: Awaitable[T]) -> T | None:
        """Await ``aw`` unless a stop is requested first, in which case cancel it and return None."""
        task = asyncio.ensure_future(aw)
        stopper = asyncio.create_task(self._stop.wait())
        try:
            await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if task.cancelled():
            return None
        return task.result()

    def _build_store(self) -> LeaseStore:
        try:
            return DynamoDBLeaseStore(
                self.config.region,
                table_name=self.config.table_name,
                timeout=self.config.store_timeout,
            )
        except BotoCoreError as e:
            raise StartupError(f"Could not create the device table client: {e}") from e

    def _build_transport(self, endpoint: str) -> Transport:
        try:
            return IotDataTransport(endpoint, self.config.region, timeout=self.config.publish_timeout)
        except BotoCoreError as e:
            raise StartupError(f"Could not create the IoT data client: {e}") from e
