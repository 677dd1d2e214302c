"""Command-line entry point."""

import argparse
import asyncio
import signal

from rmsimulator.app import Simulator
from rmsimulator.config import SimulatorConfig
from rmsimulator.errors import StartupError
from rmsimulator.logs import get_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rmsimulator",
        description="Simulate a remote-monitoring device that leases a fleet-unique id and publishes telemetry.",
    )
    parser.add_argument("--region", help="AWS region for the device table and IoT endpoint (env AWS_REGION)")
    parser.add_argument("--topic", help="Topic to publish telemetry to (env TOPIC)")
    parser.add_argument("--interval-ms", type=int, help="Publish and renewal period (env SIMULATOR_INTERVAL_MS)")
    parser.add_argument("--start-id", type=int, help="First device id probed (env DEVICE_START_ID)")
    parser.add_argument("--table", dest="table_name", help="DynamoDB table holding device leases (env DEVICE_TABLE)")
    parser.add_argument(
        "--on-lease-lost",
        choices=["reacquire", "continue"],
        help="What to do when a renewal finds the lease taken over (env LEASE_LOST_POLICY)",
    )
    parser.add_argument(
        "--legacy-oil-level",
        action="store_true",
        default=None,
        help="Generate oil levels in the legacy [100, 199) range",
    )
    parser.add_argument("--log-level", help="Logging verbosity (env LOG_LEVEL)")
    return parser


async def _run(simulator: Simulator) -> bool:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, simulator.request_stop)
    try:
        return await simulator.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = SimulatorConfig.from_env(**vars(args))
    except StartupError as e:
        get_logger("rmsimulator").error("%s", e)
        return 1
    return 0 if asyncio.run(_run(Simulator(config))) else 1
