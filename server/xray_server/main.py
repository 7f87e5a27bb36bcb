"""X-ray ingest server: main entry point.

This is the only file that knows about concrete implementations.
It wires together the broker, core, storage, simulator, and API layers.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from xray_server.api.broker import router as broker_router
from xray_server.api.monitoring import router as monitoring_router
from xray_server.api.producer import router as producer_router
from xray_server.api.signals import router as signals_router
from xray_server.broker.amqp import AmqpBroker
from xray_server.broker.base import MessageBroker, Topology
from xray_server.broker.memory import MemoryBroker
from xray_server.config import AppConfig, load_config
from xray_server.core.catalog import load_catalog
from xray_server.core.consumer import ReadingConsumer
from xray_server.core.processor import SignalProcessor
from xray_server.core.publisher import Publisher
from xray_server.core.simulator import DeviceSimulator
from xray_server.core.stats import IngestStats
from xray_server.storage.base import SignalStore
from xray_server.storage.memory import MemorySignalStore
from xray_server.storage.mongo import MongoSignalStore

log = structlog.get_logger()

# Module-level singletons (set during startup)
_config: AppConfig | None = None
_stats: IngestStats | None = None
_broker: MessageBroker | None = None
_store: SignalStore | None = None
_publisher: Publisher | None = None
_consumer: ReadingConsumer | None = None
_simulator: DeviceSimulator | None = None


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def get_stats() -> IngestStats:
    assert _stats is not None, "Server not initialized"
    return _stats


def get_broker() -> MessageBroker:
    assert _broker is not None, "Server not initialized"
    return _broker


def get_store() -> SignalStore:
    assert _store is not None, "Server not initialized"
    return _store


def get_publisher() -> Publisher:
    assert _publisher is not None, "Server not initialized"
    return _publisher


def get_consumer() -> ReadingConsumer:
    assert _consumer is not None, "Server not initialized"
    return _consumer


def get_simulator() -> DeviceSimulator:
    assert _simulator is not None, "Server not initialized"
    return _simulator


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


def build_broker(config: AppConfig) -> MessageBroker:
    topology = Topology(exchange=config.broker.exchange, queue=config.broker.queue)
    if config.broker.backend == "memory":
        return MemoryBroker(topology=topology, prefetch=config.broker.prefetch)
    return AmqpBroker(url=config.broker.url, topology=topology,
                      prefetch=config.broker.prefetch)


async def build_store(config: AppConfig) -> SignalStore:
    if config.storage.backend == "memory":
        return MemorySignalStore()
    store = MongoSignalStore.from_uri(
        config.storage.mongo_uri,
        database=config.storage.database,
        collection=config.storage.collection,
    )
    await store.ensure_indexes()
    return store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _config, _stats, _broker, _store, _publisher, _consumer, _simulator

    _config = load_config()
    _setup_logging(_config)

    log.info("server_starting",
             env=_config.server.env,
             broker=_config.broker.backend,
             storage=_config.storage.backend)

    # Create components
    _stats = IngestStats(active_window_seconds=_config.limits.active_window_seconds)
    _broker = build_broker(_config)
    _store = await build_store(_config)
    _publisher = Publisher(_broker, stats=_stats)
    _consumer = ReadingConsumer(_broker, stats=_stats)
    processor = SignalProcessor(store=_store, stats=_stats)
    _consumer.subscribe(processor.process_reading)

    data_file = _config.simulator.data_file if _config.simulator.load_data_file else None
    _simulator = DeviceSimulator(
        publisher=_publisher,
        catalog=load_catalog(data_file),
        pacing_seconds=_config.simulator.pacing_ms / 1000,
    )

    await _broker.connect()

    # Start background consumer
    consumer_task = asyncio.create_task(_consumer.run())

    log.info("server_started",
             host=_config.server.host,
             port=_config.server.port)

    try:
        yield
    finally:
        # Shutdown
        _simulator.stop_all()
        consumer_task.cancel()
        try:
            await consumer_task
        except asyncio.CancelledError:
            pass
        except Exception:
            log.error("consumer_task_failed", exc_info=True)
        finally:
            await _broker.close()
            await _store.close()
            log.info("server_stopped")


app = FastAPI(
    title="IoT X-Ray Ingest",
    description="X-ray telemetry ingestion over RabbitMQ with MongoDB storage",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(signals_router)
app.include_router(producer_router)
app.include_router(broker_router)
app.include_router(monitoring_router)


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    config = load_config()
    uvicorn.run(
        "xray_server.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    run()
