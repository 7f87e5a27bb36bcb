"""Shared test fixtures."""

from __future__ import annotations

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

import xray_server.main as main_module
from xray_server.broker.memory import MemoryBroker
from xray_server.config import AppConfig
from xray_server.core.catalog import DeviceTrack
from xray_server.core.consumer import ReadingConsumer
from xray_server.core.models import Reading, Sample
from xray_server.core.processor import SignalProcessor
from xray_server.core.publisher import Publisher
from xray_server.core.simulator import DeviceSimulator
from xray_server.core.stats import IngestStats
from xray_server.storage.memory import MemorySignalStore

D1_SAMPLES = (
    Sample(762, (51.339764, 12.339223, 1.2038)),
    Sample(1766, (51.339777, 12.339211, 1.531604)),
)


@pytest.fixture
def reading() -> Reading:
    return Reading(device_id="d1", samples=D1_SAMPLES, collected_at=1735683480000)


@pytest.fixture
def catalog() -> dict[str, DeviceTrack]:
    return {
        "d1": DeviceTrack(samples=D1_SAMPLES, base_time=1735683480000),
        "d2": DeviceTrack(
            samples=(
                Sample(100, (48.85, 2.35, 3.0)),
                Sample(200, (48.86, 2.36, 4.0)),
                Sample(300, (48.87, 2.37, 5.0)),
            ),
            base_time=1735683490000,
        ),
    }


@pytest.fixture
def stats() -> IngestStats:
    return IngestStats()


@pytest.fixture
async def broker():
    b = MemoryBroker()
    await b.connect()
    yield b
    await b.close()


@pytest.fixture
def store() -> MemorySignalStore:
    return MemorySignalStore()


@pytest.fixture
def wait_until():
    """Poll an (async or sync) predicate until it is truthy or time runs out."""

    async def _wait(predicate, timeout: float = 2.0, interval: float = 0.01):
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            result = predicate()
            if asyncio.iscoroutine(result):
                result = await result
            if result:
                return result
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait


@pytest.fixture
async def app_state(broker, store, stats, catalog):
    """Install in-memory server singletons and run the consumer loop."""
    config = AppConfig()
    config.server.env = "test"
    config.broker.backend = "memory"
    config.storage.backend = "memory"
    config.logging.level = "warning"

    publisher = Publisher(broker, stats=stats)
    consumer = ReadingConsumer(broker, stats=stats)
    consumer.subscribe(SignalProcessor(store=store, stats=stats).process_reading)
    simulator = DeviceSimulator(publisher=publisher, catalog=catalog, pacing_seconds=0)

    # Patch module-level singletons
    main_module._config = config
    main_module._stats = stats
    main_module._broker = broker
    main_module._store = store
    main_module._publisher = publisher
    main_module._consumer = consumer
    main_module._simulator = simulator

    consumer_task = asyncio.create_task(consumer.run())

    yield main_module

    # Cleanup
    simulator.stop_all()
    consumer_task.cancel()
    try:
        await consumer_task
    except asyncio.CancelledError:
        pass
    main_module._config = None
    main_module._stats = None
    main_module._broker = None
    main_module._store = None
    main_module._publisher = None
    main_module._consumer = None
    main_module._simulator = None


@pytest.fixture
async def client(app_state):
    from xray_server.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
