#!/usr/bin/env python3
"""X-ray device traffic simulator.

Publishes catalog tracks straight onto the broker, without going through
the HTTP API.

Usage:
    # 5 messages for every catalog device
    xray-simulate --broker-url amqp://localhost:5672 bulk --count 5

    # 50 messages from randomly picked devices
    xray-simulate --data-file x-ray.json random --count 50

    # One sample per second from a device for two minutes
    xray-simulate continuous --device 66bb584d4ae73e488c30a072 --interval 1000 --duration 120
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time

from xray_server.broker.amqp import AmqpBroker
from xray_server.broker.base import MessageBroker, Topology
from xray_server.core.catalog import load_catalog
from xray_server.core.publisher import Publisher
from xray_server.core.simulator import DeviceSimulator
from xray_server.core.stats import IngestStats


async def run_simulation(args: argparse.Namespace, broker: MessageBroker | None = None) -> int:
    """Run one simulation mode. Returns the number of readings published."""
    if broker is None:
        broker = AmqpBroker(
            url=args.broker_url,
            topology=Topology(exchange=args.exchange, queue=args.queue),
        )
    await broker.connect()

    stats = IngestStats()
    simulator = DeviceSimulator(
        publisher=Publisher(broker, stats=stats),
        catalog=load_catalog(args.data_file),
        pacing_seconds=args.pacing_ms / 1000,
    )

    print(f"Starting simulation: mode={args.mode}")
    print(f"  Broker: {broker.url}")
    print(f"  Devices in catalog: {len(simulator.list_devices())}")
    print()

    start = time.monotonic()
    try:
        if args.mode == "random":
            await simulator.send_random(args.count)
        elif args.mode == "continuous":
            known = set(simulator.list_devices())
            for device_id in args.device:
                if device_id not in known:
                    print(f"  Unknown device, skipped: {device_id}")
                    continue
                simulator.start_continuous(device_id, args.interval)
            await asyncio.sleep(args.duration)
            simulator.stop_all()
        else:
            device_ids = args.device or simulator.list_devices()
            await simulator.send_bulk(device_ids, args.count)
    finally:
        await broker.close()

    elapsed = time.monotonic() - start
    snapshot = stats.snapshot()
    print(f"\nSimulation complete in {elapsed:.1f}s")
    print(f"  Readings published: {snapshot['readings_published']}")
    print(f"  Publish errors: {snapshot['publish_errors']}")
    print(f"  Bytes published: {snapshot['bytes_published']}")
    return snapshot["readings_published"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="X-ray device traffic simulator")
    parser.add_argument("--broker-url", default="amqp://localhost:5672", help="AMQP broker URL")
    parser.add_argument("--exchange", default="x-ray-exchange", help="Fan-out exchange name")
    parser.add_argument("--queue", default="x-ray-queue", help="Queue bound to the exchange")
    parser.add_argument("--data-file", default="x-ray.json",
                        help="Device catalog JSON (falls back to a built-in device)")
    parser.add_argument("--pacing-ms", type=int, default=100,
                        help="Delay between bulk/random messages")

    modes = parser.add_subparsers(dest="mode", required=True)

    bulk = modes.add_parser("bulk", help="Full track per message, device by device")
    bulk.add_argument("--device", action="append", default=[],
                      help="Device id (repeatable, default: whole catalog)")
    bulk.add_argument("--count", type=int, default=1, help="Messages per device")

    rand = modes.add_parser("random", help="Full track from a random device per message")
    rand.add_argument("--count", type=int, default=1, help="Number of messages")

    cont = modes.add_parser("continuous", help="One sample per tick, cycling the track")
    cont.add_argument("--device", action="append", required=True, help="Device id (repeatable)")
    cont.add_argument("--interval", type=int, default=5000, help="Tick interval in ms")
    cont.add_argument("--duration", type=float, default=60, help="Run time in seconds")

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(run_simulation(args))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
