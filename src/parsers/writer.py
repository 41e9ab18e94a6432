"""Dual-store writer: primary first, secondary via an owned in-memory queue.

The primary write is awaited for every record. Only records the primary
accepted are queued for the secondary store, which is drained on a
timer and once more at shutdown. Records the secondary rejects go back
on the queue for the next cycle.
"""

import asyncio
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from src.db.store import DuplicateKeyError, TokenStore, UpsertOutcome
from src.parsers.metrics import IndexerMetrics
from src.parsers.pumpfun.models import TokenRecord


@dataclass(frozen=True)
class CommitResult:
    committed: bool
    outcome: UpsertOutcome | None = None
    error: str | None = None


class DualStoreWriter:
    def __init__(
        self,
        primary: TokenStore,
        secondary: TokenStore | None = None,
        *,
        flush_interval_sec: float = 300,
        metrics: IndexerMetrics | None = None,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._flush_interval = flush_interval_sec
        self._metrics = metrics
        self._queue: list[TokenRecord] = []
        self._timer_task: asyncio.Task | None = None

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def pending(self) -> list[TokenRecord]:
        return list(self._queue)

    async def commit(self, record: TokenRecord) -> CommitResult:
        """Upsert into the primary store, then queue for the secondary.

        A primary failure is logged and returned, never raised: the event
        is lost unless a later backfill recovers it.
        """
        try:
            outcome = await self._primary.upsert_one(record)
        except (SQLAlchemyError, DuplicateKeyError, OSError) as e:
            logger.error(
                f"[WRITER] Primary write failed for {record.token_address[:12]}: "
                f"{type(e).__name__}: {e}"
            )
            if self._metrics:
                self._metrics.record_primary_failure()
            return CommitResult(committed=False, error=str(e))

        if self._metrics:
            self._metrics.record_primary_commit()
        if self._secondary is not None:
            self._queue.append(record)
        logger.info(
            f"[WRITER] {outcome.value} {record.symbol} ({record.token_address[:12]}) "
            f"queue={len(self._queue)}"
        )
        return CommitResult(committed=True, outcome=outcome)

    async def flush(self) -> int:
        """Drain the queue into the secondary store. Returns records written.

        The queue is swapped out before any await, so records committed
        while the flush is running land in the fresh queue. If the flush is
        cancelled part way, the unwritten tail goes back on the queue.
        """
        if self._secondary is None or not self._queue:
            return 0

        batch, self._queue = self._queue, []
        written = 0
        done = 0
        failed: list[TokenRecord] = []
        try:
            for record in batch:
                try:
                    await self._secondary.upsert_one(record)
                    written += 1
                except Exception as e:
                    logger.warning(
                        f"[WRITER] Secondary write failed for {record.token_address[:12]}, "
                        f"requeued: {e}"
                    )
                    failed.append(record)
                done += 1
        finally:
            leftover = failed + batch[done:]
            if leftover:
                self._queue[:0] = leftover

        if self._metrics:
            self._metrics.record_secondary_flush(written, len(failed))
        logger.info(
            f"[WRITER] Secondary flush: {written} written, {len(failed)} requeued"
        )
        return written

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval)
            await self.flush()

    def start(self) -> None:
        """Start the periodic secondary flush timer."""
        if self._secondary is None or self._timer_task is not None:
            return
        self._timer_task = asyncio.create_task(self._flush_loop(), name="secondary_flush")
        logger.info(f"[WRITER] Secondary flush every {self._flush_interval:.0f}s")

    async def stop(self) -> None:
        """Cancel the timer, then drain the queue once."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        if self._queue:
            logger.info(f"[WRITER] Final flush of {len(self._queue)} queued records")
        await self.flush()
        if self._queue:
            logger.warning(
                f"[WRITER] {len(self._queue)} records not written to secondary at shutdown"
            )
