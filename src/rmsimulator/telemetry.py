"""Synthetic engine readings and their wire encoding."""

import json
import random
from dataclasses import dataclass

DEVICE_TYPE = "RM_Accelerator"

# Half-open [lower, upper) ranges
PRESSURE_RANGE = (0, 100)
OIL_LEVEL_RANGE = (1, 100)
TEMPERATURE_RANGE = (175, 250)


@dataclass(frozen=True)
class Reading:
    pressure: int
    oil_level: int
    temperature: int


def _uniform(rng: random.Random, bounds: tuple[int, int]) -> int:
    lower, upper = bounds
    return rng.randrange(lower, upper)


def generate_reading(rng: random.Random | None = None, *, legacy_oil_level: bool = False) -> Reading:
    """
    Generate one reading with each field drawn uniformly from its range.

    Args:
        rng: Random source (module-level random by default)
        legacy_oil_level: Offset the oil level by the range's upper bound
            instead of its lower bound, giving values in [100, 199). Older
            consumers of the feed were built against that output.
    """
    rng = rng or random.Random()
    oil_lower, oil_upper = OIL_LEVEL_RANGE
    if legacy_oil_level:
        oil_level = rng.randrange(0, oil_upper - oil_lower) + oil_upper
    else:
        oil_level = _uniform(rng, OIL_LEVEL_RANGE)

    return Reading(
        pressure=_uniform(rng, PRESSURE_RANGE),
        oil_level=oil_level,
        temperature=_uniform(rng, TEMPERATURE_RANGE),
    )


def encode_payload(device_id: int, reading: Reading) -> bytes:
    """Serialize a reading for ``device_id`` as the JSON telemetry payload."""
    return json.dumps(
        {
            "deviceType": DEVICE_TYPE,
            "deviceId": device_id,
            "pressure": reading.pressure,
            "oilLevel": reading.oil_level,
            "temperature": reading.temperature,
        }
    ).encode("utf-8")
