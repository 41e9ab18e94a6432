"""Live indexer wiring: listener -> decoder -> enrichment -> dual-store writer.

Store handles, clients and the secondary queue are built here and passed
down; nothing lives in module-level singletons.
"""

import asyncio

from loguru import logger

from config.settings import Settings, settings as default_settings
from src.db.database import create_engine
from src.db.redis import close_redis, create_redis
from src.db.redis_store import RedisTokenStore
from src.db.token_store import PostgresTokenStore
from src.parsers.metadata_fetcher import MetadataFetcher
from src.parsers.metrics import IndexerMetrics
from src.parsers.pumpfun.processor import CreateEventProcessor
from src.parsers.pumpfun.ws_client import PumpfunLogsClient
from src.parsers.writer import DualStoreWriter


async def run_indexer(
    shutdown_event: asyncio.Event,
    config: Settings | None = None,
) -> None:
    """Run until ``shutdown_event`` is set.

    Raises StoreUnavailableError / ListenerStartError when startup fails.
    """
    config = config or default_settings
    metrics = IndexerMetrics()

    engine = create_engine(config.database_url)
    redis = create_redis(config.redis_url) if config.enable_secondary_store else None
    fetcher = MetadataFetcher(
        timeout=config.metadata_timeout_sec,
        max_retries=config.metadata_max_retries,
    )
    listener: PumpfunLogsClient | None = None
    writer: DualStoreWriter | None = None
    stats_task: asyncio.Task | None = None

    try:
        primary = PostgresTokenStore(engine)
        await primary.ping()
        logger.info("[WRITER] Primary store reachable")

        secondary = None
        if redis is not None:
            secondary = RedisTokenStore(redis)
            await secondary.ping()
            logger.info("[WRITER] Secondary store reachable")
        else:
            logger.info("[WRITER] Secondary store disabled")

        writer = DualStoreWriter(
            primary,
            secondary,
            flush_interval_sec=config.secondary_flush_interval_sec,
            metrics=metrics,
        )
        processor = CreateEventProcessor(fetcher, writer, metrics=metrics)

        listener = PumpfunLogsClient(
            config.ws_url,
            program_id=config.pump_program_id,
            commitment=config.log_commitment,
            callback_timeout=config.event_callback_timeout_sec,
            metrics=metrics,
        )
        listener.on_create_event = processor.handle

        writer.start()
        await listener.start()

        stats_task = asyncio.create_task(
            _stats_reporter(listener, writer, metrics, config.stats_interval_sec),
            name="stats",
        )
        logger.info("Indexer running")
        await shutdown_event.wait()
    finally:
        # subscription first, then in-flight events, then timer + final flush
        if stats_task is not None:
            stats_task.cancel()
        if listener is not None:
            await listener.stop()
            await listener.wait_pending(timeout=config.event_callback_timeout_sec)
        if writer is not None:
            await writer.stop()
            logger.info(f"[STATS] New tokens this session: {metrics.new_tokens_count}")
        await fetcher.close()
        if redis is not None:
            await close_redis(redis)
        await engine.dispose()


async def _stats_reporter(
    listener: PumpfunLogsClient,
    writer: DualStoreWriter,
    metrics: IndexerMetrics,
    interval: float,
) -> None:
    """Log indexer stats every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        parts = [
            f"WS messages: {listener.message_count}",
            f"WS state: {listener.state.value}",
            f"In flight: {listener.pending_count}",
            metrics.format_stats_line(queue_size=writer.queue_size),
        ]
        logger.info(f"[STATS] {' | '.join(parts)}")
