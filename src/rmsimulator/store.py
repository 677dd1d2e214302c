"""Conditional-write lease stores."""

import asyncio
from typing import Protocol

from rmsimulator.lease import AbsentOrExpired, ExpiryEquals, LeaseRecord, Precondition


class LeaseStore(Protocol):
    """A key/value store offering single-key atomic conditional writes."""

    async def conditional_put(self, record: LeaseRecord, precondition: Precondition) -> bool:
        """
        Write ``record`` under ``record.device_id`` if ``precondition`` holds.

        Returns:
            True if the record was written, False if the condition failed

        Raises:
            StoreError: If the backend could not be reached or failed otherwise
        """
        ...


class InMemoryLeaseStore:
    """
    Process-local lease store.

    Every conditional write runs under one lock, so writes are linearizable
    across all tasks sharing the instance.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._records: dict[int, LeaseRecord] = {}

    async def conditional_put(self, record: LeaseRecord, precondition: Precondition) -> bool:
        async with self._lock:
            existing = self._records.get(record.device_id)
            if isinstance(precondition, AbsentOrExpired):
                if existing is not None and not existing.is_expired(precondition.now_ms):
                    return False
            elif isinstance(precondition, ExpiryEquals):
                if existing is None or existing.lease_expiry_ms != precondition.expected_expiry_ms:
                    return False
            else:
                raise TypeError(f"Unsupported precondition: {precondition!r}")

            self._records[record.device_id] = record
            return True

    async def get(self, device_id: int) -> LeaseRecord | None:
        """Return the stored record for a device id, if any."""
        async with self._lock:
            return self._records.get(device_id)

    async def seed(self, record: LeaseRecord) -> None:
        """Unconditionally write a record (used to model other processes)."""
        async with self._lock:
            self._records[record.device_id] = record

    async def device_ids(self) -> set[int]:
        """Return all device ids that have a record."""
        async with self._lock:
            return set(self._records)
