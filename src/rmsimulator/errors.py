"""Exception classes for rmsimulator."""


class SimulatorError(Exception):
    """Base exception for all rmsimulator errors."""


class StoreError(SimulatorError):
    """Raised when the lease store cannot be reached or rejects a call for a reason other than a failed condition."""


class LeaseLostError(SimulatorError):
    """Raised when a renewal finds the stored lease no longer matches the one this process last wrote."""

    def __init__(self, device_id: int, expected_expiry_ms: int) -> None:
        super().__init__(
            f"Lease for device {device_id} was superseded (expected expiry {expected_expiry_ms})"
        )
        self.device_id = device_id
        self.expected_expiry_ms = expected_expiry_ms


class PublishError(SimulatorError):
    """Raised when a telemetry payload could not be handed to the transport."""


class StartupError(SimulatorError):
    """Raised when the simulator cannot obtain the configuration or endpoint it needs to start."""


class SchedulerClosedError(SimulatorError):
    """Raised when starting a scheduler that has already been stopped."""
