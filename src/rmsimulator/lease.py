"""Identity and lease record types shared with the store."""

import time
from dataclasses import dataclass

# Lease horizon as a multiple of the renewal period: three renewals can be
# missed before the identity becomes reclaimable.
LEASE_HORIZON_FACTOR = 4


def now_ms() -> int:
    """Return the wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def lease_horizon_ms(renew_interval_ms: int) -> int:
    """Return how far past now a freshly written lease should expire."""
    return LEASE_HORIZON_FACTOR * renew_interval_ms


@dataclass(frozen=True)
class Identity:
    """The device identity held by this process and the expiry it last wrote."""

    device_id: int
    lease_expiry_ms: int

    def expires_in(self, now: int) -> int:
        """Milliseconds left on the lease (negative once expired)."""
        return self.lease_expiry_ms - now


@dataclass(frozen=True)
class LeaseRecord:
    """A row in the lease store, keyed by device_id."""

    device_id: int
    lease_expiry_ms: int

    @classmethod
    def for_identity(cls, identity: Identity) -> "LeaseRecord":
        return cls(device_id=identity.device_id, lease_expiry_ms=identity.lease_expiry_ms)

    def is_expired(self, now: int) -> bool:
        """Check whether the lease has passed its fence and may be reclaimed."""
        return self.lease_expiry_ms <= now


@dataclass(frozen=True)
class AbsentOrExpired:
    """Write condition for acquisition: no record, or its lease expired at or before ``now_ms``."""

    now_ms: int


@dataclass(frozen=True)
class ExpiryEquals:
    """Write condition for renewal: the stored expiry still equals the one we wrote."""

    expected_expiry_ms: int


Precondition = AbsentOrExpired | ExpiryEquals
