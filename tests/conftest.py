"""Shared fixtures and fakes."""

import pytest

from rmsimulator.errors import PublishError


class FakeClock:
    """Controllable wall clock in epoch milliseconds."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingTransport:
    """Transport that records every publish and can be told to fail."""

    def __init__(self, *, fail: bool = False) -> None:
        self.published: list[tuple[str, bytes]] = []
        self.fail = fail

    async def publish(self, topic: str, payload: bytes) -> None:
        if self.fail:
            raise PublishError("broker unavailable")
        self.published.append((topic, payload))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
