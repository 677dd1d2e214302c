"""AWS-backed lease store and telemetry transport (DynamoDB and IoT Core)."""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from rmsimulator.errors import PublishError, StartupError, StoreError
from rmsimulator.lease import AbsentOrExpired, ExpiryEquals, LeaseRecord, Precondition

T = TypeVar("T")

DEFAULT_TABLE_NAME = "iot-rm-devices-table"
DEFAULT_TIMEOUT = 5.0


def _client_config(timeout: float) -> Config:
    return Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": 2, "mode": "standard"},
    )


async def _call(fn: Callable[..., T], timeout: float, **kwargs: Any) -> T:
    """Run a blocking boto3 call off the event loop, bounded by ``timeout`` seconds."""
    return await asyncio.wait_for(asyncio.to_thread(fn, **kwargs), timeout)


def _is_condition_failure(err: ClientError) -> bool:
    return err.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoDBLeaseStore:
    """
    Lease store backed by a DynamoDB table keyed on ``deviceId``.

    Besides the exact ``leaseExpiryMs`` used for conditions, each write sets
    ``ttlDevice`` in epoch seconds so the table's native TTL can sweep rows
    left behind by stopped devices.
    """

    def __init__(
        self,
        region: str | None,
        *,
        table_name: str = DEFAULT_TABLE_NAME,
        timeout: float = DEFAULT_TIMEOUT,
        table: Any = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            region: AWS region of the table
            table_name: Name of the devices table
            timeout: Upper bound in seconds on each store call
            table: Pre-built boto3 Table resource (skips resource creation)
        """
        if table is None:
            resource = boto3.resource(
                "dynamodb", region_name=region, config=_client_config(timeout)
            )
            table = resource.Table(table_name)
        self._table = table
        self._timeout = timeout

    async def conditional_put(self, record: LeaseRecord, precondition: Precondition) -> bool:
        try:
            if isinstance(precondition, AbsentOrExpired):
                await _call(
                    self._table.put_item,
                    self._timeout,
                    Item={
                        "deviceId": record.device_id,
                        "leaseExpiryMs": record.lease_expiry_ms,
                        "ttlDevice": record.lease_expiry_ms // 1000,
                    },
                    ConditionExpression=(
                        Attr("deviceId").not_exists()
                        | Attr("leaseExpiryMs").lte(precondition.now_ms)
                    ),
                )
            elif isinstance(precondition, ExpiryEquals):
                await _call(
                    self._table.update_item,
                    self._timeout,
                    Key={"deviceId": record.device_id},
                    UpdateExpression="SET leaseExpiryMs = :nt, ttlDevice = :ts",
                    ConditionExpression="leaseExpiryMs = :t",
                    ExpressionAttributeValues={
                        ":nt": record.lease_expiry_ms,
                        ":ts": record.lease_expiry_ms // 1000,
                        ":t": precondition.expected_expiry_ms,
                    },
                )
            else:
                raise TypeError(f"Unsupported precondition: {precondition!r}")
        except ClientError as e:
            if _is_condition_failure(e):
                return False
            raise StoreError(f"DynamoDB write for device {record.device_id} failed: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"DynamoDB write for device {record.device_id} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise StoreError(
                f"DynamoDB write for device {record.device_id} timed out after {self._timeout}s"
            ) from e
        return True


class IotDataTransport:
    """Publishes payloads through the AWS IoT Core data plane at QoS 0."""

    def __init__(
        self,
        endpoint: str,
        region: str | None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: Any = None,
    ) -> None:
        if not endpoint:
            raise StartupError("Invalid IoT endpoint; cannot publish telemetry")
        if client is None:
            client = boto3.client(
                "iot-data",
                region_name=region,
                endpoint_url=f"https://{endpoint}",
                config=_client_config(timeout),
            )
        self._client = client
        self._timeout = timeout

    async def publish(self, topic: str, payload: bytes) -> None:
        try:
            await _call(self._client.publish, self._timeout, topic=topic, qos=0, payload=payload)
        except (ClientError, BotoCoreError) as e:
            raise PublishError(f"Publish to {topic!r} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise PublishError(f"Publish to {topic!r} timed out after {self._timeout}s") from e


async def resolve_iot_endpoint(
    region: str | None,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    client: Any = None,
) -> str:
    """
    Look up the account's IoT Core data endpoint for a region.

    Raises:
        StartupError: If the endpoint cannot be resolved
    """
    try:
        if client is None:
            client = boto3.client("iot", region_name=region, config=_client_config(timeout))
        response = await _call(client.describe_endpoint, timeout, endpointType="iot:Data-ATS")
    except (ClientError, BotoCoreError, asyncio.TimeoutError) as e:
        raise StartupError(f"Could not resolve IoT endpoint for region {region}: {e!r}") from e

    endpoint = response.get("endpointAddress", "")
    if not endpoint:
        raise StartupError(f"Region {region} returned an empty IoT endpoint")
    return endpoint
