"""Per-event pipeline for live CreateEvents: enrich, assemble, commit."""

from loguru import logger

from src.parsers.metadata_fetcher import MetadataFetcher
from src.parsers.metrics import IndexerMetrics
from src.parsers.pumpfun.models import CreateEvent, TokenRecord
from src.parsers.writer import CommitResult, DualStoreWriter


class CreateEventProcessor:
    def __init__(
        self,
        fetcher: MetadataFetcher,
        writer: DualStoreWriter,
        *,
        metrics: IndexerMetrics | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._writer = writer
        self._metrics = metrics

    async def handle(self, event: CreateEvent) -> CommitResult:
        """Missing metadata still persists the token, with empty descriptive fields."""
        metadata = None
        if event.uri:
            metadata = await self._fetcher.fetch_metadata(event.uri)
            if metadata is None:
                if self._metrics:
                    self._metrics.record_metadata_miss()
                logger.debug(f"[LISTENER] No metadata for {event.mint[:12]}, storing without it")

        record = TokenRecord.from_create_event(event, metadata)
        return await self._writer.commit(record)
