"""Example: a small fleet sharing one in-memory lease store.

Three simulators start at once and each claims its own device id. One of
them is then stopped; once its lease lapses a newcomer reclaims the id.
"""

import asyncio
import json
import logging

from rmsimulator import InMemoryLeaseStore, SimulatorConfig
from rmsimulator.app import Simulator


class PrintingTransport:
    """Prints payloads instead of sending them."""

    async def publish(self, topic: str, payload: bytes) -> None:
        body = json.loads(payload)
        print(f"  {topic} <- device {body['deviceId']}: {body}")


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    store = InMemoryLeaseStore()
    transport = PrintingTransport()
    config = SimulatorConfig.from_env({}, interval_ms=250)

    fleet = [Simulator(config, store=store, transport=transport) for _ in range(3)]
    runners = [asyncio.create_task(s.run()) for s in fleet]
    await asyncio.sleep(0.6)
    print("ids:", sorted(s.manager.identity.device_id for s in fleet))

    print("\nStopping the first device; its lease expires after 4 intervals...")
    fleet[0].request_stop()
    await runners[0]
    await asyncio.sleep(1.2)

    newcomer = Simulator(config, store=store, transport=transport)
    runners.append(asyncio.create_task(newcomer.run()))
    await asyncio.sleep(0.6)
    print("newcomer id:", newcomer.manager.identity.device_id)

    for s in fleet[1:] + [newcomer]:
        s.request_stop()
    await asyncio.gather(*runners)


if __name__ == "__main__":
    asyncio.run(main())
