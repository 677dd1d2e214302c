"""Process configuration, loaded once at startup."""

import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from rmsimulator.errors import StartupError
from rmsimulator.manager import DEFAULT_START_ID
from rmsimulator.transport import DEFAULT_TOPIC
from rmsimulator.types import LeaseLostPolicy

# Environment variable for each field
_ENV_VARS = {
    "log_level": "LOG_LEVEL",
    "interval_ms": "SIMULATOR_INTERVAL_MS",
    "region": "AWS_REGION",
    "topic": "TOPIC",
    "start_id": "DEVICE_START_ID",
    "table_name": "DEVICE_TABLE",
    "store_timeout": "STORE_TIMEOUT",
    "publish_timeout": "PUBLISH_TIMEOUT",
    "on_lease_lost": "LEASE_LOST_POLICY",
    "legacy_oil_level": "LEGACY_OIL_LEVEL",
}


class SimulatorConfig(BaseModel):
    """Settings for one simulator process, passed explicitly to the components that need them."""

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Loop and lease timing
    interval_ms: int = Field(default=30000, gt=0)
    start_id: int = DEFAULT_START_ID
    on_lease_lost: LeaseLostPolicy = "reacquire"

    # AWS targets
    region: str | None = None
    topic: str = DEFAULT_TOPIC
    table_name: str = "iot-rm-devices-table"

    # Upper bounds, in seconds, on each backend call
    store_timeout: float = Field(default=5.0, gt=0)
    publish_timeout: float = Field(default=5.0, gt=0)

    legacy_oil_level: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> "SimulatorConfig":
        """
        Build the configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            overrides: Field values taking precedence over the environment
                (None values are ignored)

        Raises:
            StartupError: If a value is missing or invalid
        """
        environ = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for field, var in _ENV_VARS.items():
            if environ.get(var):
                values[field] = environ[var]
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except ValidationError as e:
            raise StartupError(f"Invalid simulator configuration: {e}") from e
