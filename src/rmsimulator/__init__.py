"""rmsimulator - Remote-monitoring device simulator with store-leased fleet-unique ids."""

from rmsimulator.config import SimulatorConfig
from rmsimulator.errors import (
    LeaseLostError,
    PublishError,
    SchedulerClosedError,
    SimulatorError,
    StartupError,
    StoreError,
)
from rmsimulator.lease import AbsentOrExpired, ExpiryEquals, Identity, LeaseRecord
from rmsimulator.manager import IdentityLeaseManager
from rmsimulator.scheduler import TelemetryScheduler
from rmsimulator.store import InMemoryLeaseStore, LeaseStore
from rmsimulator.telemetry import Reading, encode_payload, generate_reading
from rmsimulator.transport import Transport
from rmsimulator.types import LeaseLostPolicy

__version__ = "0.0.1"

__all__ = [
    "IdentityLeaseManager",
    "TelemetryScheduler",
    "SimulatorConfig",
    "Identity",
    "LeaseRecord",
    "AbsentOrExpired",
    "ExpiryEquals",
    "LeaseStore",
    "InMemoryLeaseStore",
    "Transport",
    "Reading",
    "generate_reading",
    "encode_payload",
    "LeaseLostPolicy",
    "SimulatorError",
    "StoreError",
    "LeaseLostError",
    "PublishError",
    "StartupError",
    "SchedulerClosedError",
]
