"""Identity acquisition and lease renewal against a shared conditional-write store."""

import asyncio
import logging

from rmsimulator.errors import LeaseLostError
from rmsimulator.lease import (
    AbsentOrExpired,
    ExpiryEquals,
    Identity,
    LeaseRecord,
    lease_horizon_ms,
    now_ms,
)
from rmsimulator.store import LeaseStore
from rmsimulator.types import Clock, LeaseLostPolicy

DEFAULT_START_ID = 1000


class IdentityLeaseManager:
    """
    Claims a unique integer device id from a shared store and keeps its lease alive.

    Ids are claimed by linear probing upward from ``start_id``: each probe is a
    conditional write that only succeeds when the id is unclaimed or its lease
    has expired. The store's conditional write is the only coordination between
    simulator processes.
    """

    def __init__(
        self,
        store: LeaseStore,
        *,
        renew_interval_ms: int,
        start_id: int = DEFAULT_START_ID,
        clock: Clock = now_ms,
        probe_delay: float = 0.0,
        on_lease_lost: LeaseLostPolicy = "reacquire",
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            store: Shared lease store
            renew_interval_ms: How often the lease is renewed; leases are
                written to expire four intervals ahead
            start_id: First device id probed
            clock: Wall-clock source in epoch milliseconds
            probe_delay: Seconds to wait between failed probes (0 only yields
                to the event loop)
            on_lease_lost: Policy applied by keep_alive() when a renewal finds
                the lease was taken over:
                - "reacquire": probe for a fresh identity (default)
                - "continue": keep publishing under the stale identity
            logger: Logger to report through
        """
        if renew_interval_ms <= 0:
            raise ValueError("renew_interval_ms must be positive")
        self._store = store
        self._renew_interval_ms = renew_interval_ms
        self._start_id = start_id
        self._clock = clock
        self._probe_delay = probe_delay
        self._on_lease_lost = on_lease_lost
        self._logger = logger or logging.getLogger(__name__)
        self._identity: Identity | None = None
        self._lease_lost = False

    @property
    def identity(self) -> Identity | None:
        """The identity currently held, or None before acquire()."""
        return self._identity

    @property
    def renew_interval_ms(self) -> int:
        return self._renew_interval_ms

    async def acquire(self) -> Identity:
        """
        Probe ids upward from ``start_id`` until one is claimed.

        Never gives up on contention. Cancelling the calling task stops the
        probe loop at the next store call or yield.

        Returns:
            The claimed identity

        Raises:
            StoreError: If the store fails for a reason other than a held id
        """
        candidate = self._start_id
        while True:
            now = self._clock()
            expiry = now + lease_horizon_ms(self._renew_interval_ms)
            record = LeaseRecord(device_id=candidate, lease_expiry_ms=expiry)

            if await self._store.conditional_put(record, AbsentOrExpired(now_ms=now)):
                self._identity = Identity(device_id=candidate, lease_expiry_ms=expiry)
                self._lease_lost = False
                self._logger.info(
                    "Device got id. Device ID: %d (lease expires at %d)", candidate, expiry
                )
                return self._identity

            self._logger.debug("Device id %d is held by a live lease, trying %d", candidate, candidate + 1)
            candidate += 1
            await asyncio.sleep(self._probe_delay)

    async def renew(self, identity: Identity | None = None) -> Identity:
        """
        Extend the lease on ``identity`` (the held identity by default).

        The write is conditioned on the stored expiry still being the one
        this process last wrote. The new expiry is always later than the
        previous one.

        Returns:
            The identity with its new expiry

        Raises:
            LeaseLostError: If the stored lease was superseded by another writer
            StoreError: If the store could not be reached
            RuntimeError: If no identity is held
        """
        if identity is None:
            identity = self._identity
        if identity is None:
            raise RuntimeError("No identity to renew; call acquire() first")

        expiry = max(
            self._clock() + lease_horizon_ms(self._renew_interval_ms),
            identity.lease_expiry_ms + 1,
        )
        record = LeaseRecord(device_id=identity.device_id, lease_expiry_ms=expiry)
        written = await self._store.conditional_put(
            record, ExpiryEquals(expected_expiry_ms=identity.lease_expiry_ms)
        )
        if not written:
            raise LeaseLostError(identity.device_id, identity.lease_expiry_ms)

        renewed = Identity(device_id=identity.device_id, lease_expiry_ms=expiry)
        if self._identity is None or self._identity.device_id == identity.device_id:
            self._identity = renewed
        self._logger.debug("Device TTL updated. Device ID: %d", renewed.device_id)
        return renewed

    async def keep_alive(self) -> Identity:
        """
        Renew the held lease, applying the lease-lost policy if it was taken over.

        Under the "reacquire" policy a failed re-acquisition is retried on the
        next call.

        Returns:
            The identity to publish under after this call

        Raises:
            StoreError: If the store could not be reached
        """
        held = self._identity
        if held is None:
            if self._lease_lost:
                return await self.acquire()
            raise RuntimeError("No identity to keep alive; call acquire() first")

        try:
            return await self.renew(held)
        except LeaseLostError as e:
            self._logger.error("Lost lease on device id: %s", e)
            if self._on_lease_lost == "continue":
                return held
            self._identity = None
            self._lease_lost = True
            return await self.acquire()
