"""Telemetry transport interface."""

from typing import Protocol

DEFAULT_TOPIC = "remote_monitoring/"


class Transport(Protocol):
    """Fire-and-forget publisher of telemetry payloads."""

    async def publish(self, topic: str, payload: bytes) -> None:
        """
        Publish a payload to a topic (at most once, no ordering).

        Raises:
            PublishError: If the payload could not be handed off
        """
        ...
