"""Bidirectional copy between the primary and secondary token stores.

Reads one store in full, normalises every record and upserts it into the
other in fixed-size chunks with a short pause between chunks. Upsert
semantics on the target make the copy safe to repeat.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from src.db.normalize import normalize_record
from src.db.store import BatchResult, TokenStore
from src.parsers.pumpfun.models import TokenRecord


class SyncDirection(Enum):
    PRIMARY_TO_SECONDARY = "primary_to_secondary"
    SECONDARY_TO_PRIMARY = "secondary_to_primary"


@dataclass
class SyncResult:
    source: str
    target: str
    read: int = 0
    batch: BatchResult = field(default_factory=BatchResult)

    @property
    def inserted(self) -> int:
        return self.batch.inserted

    @property
    def duplicates(self) -> int:
        return self.batch.duplicates

    @property
    def errors(self) -> int:
        return self.batch.errors


@dataclass(frozen=True)
class SyncStatus:
    primary_count: int
    secondary_count: int

    @property
    def difference(self) -> int:
        return abs(self.primary_count - self.secondary_count)

    @property
    def in_sync(self) -> bool:
        """Equal row counts only; says nothing about field-level equality."""
        return self.difference == 0


@dataclass(frozen=True)
class ReconcileReport:
    direction: SyncDirection
    result: SyncResult
    status: SyncStatus


class StoreReconciler:
    def __init__(
        self,
        primary: TokenStore,
        secondary: TokenStore,
        *,
        chunk_size: int = 1000,
        chunk_delay_sec: float = 0.05,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._chunk_size = chunk_size
        self._chunk_delay = chunk_delay_sec

    async def _copy(self, source: TokenStore, target: TokenStore) -> SyncResult:
        result = SyncResult(source=source.name, target=target.name)
        logger.info(f"[SYNC] Copying {source.name} -> {target.name}")

        rows = await source.query_all()
        result.read = len(rows)

        records: list[TokenRecord] = []
        for row in rows:
            try:
                record = normalize_record(row)
            except ValidationError as e:
                logger.warning(f"[SYNC] Unusable record skipped: {e.error_count()} errors")
                result.batch.errors += 1
                continue
            if not record.token_address or not record.bonding_curve_address:
                logger.warning("[SYNC] Record without key skipped")
                result.batch.errors += 1
                continue
            records.append(record)

        total_chunks = (len(records) + self._chunk_size - 1) // self._chunk_size
        for index in range(total_chunks):
            chunk = records[index * self._chunk_size : (index + 1) * self._chunk_size]
            try:
                chunk_result = await target.upsert_batch(chunk)
            except (SQLAlchemyError, RedisError, OSError) as e:
                logger.error(f"[SYNC] Chunk {index + 1}/{total_chunks} failed: {e}")
                chunk_result = BatchResult(errors=len(chunk))
            result.batch.merge(chunk_result)
            logger.info(
                f"[SYNC] Chunk {index + 1}/{total_chunks}: inserted={chunk_result.inserted} "
                f"updated={chunk_result.updated} duplicates={chunk_result.duplicates} "
                f"errors={chunk_result.errors}"
            )
            if index < total_chunks - 1:
                await asyncio.sleep(self._chunk_delay)

        logger.info(
            f"[SYNC] {source.name} -> {target.name} done: read={result.read} "
            f"inserted={result.inserted} updated={result.batch.updated} "
            f"duplicates={result.duplicates} errors={result.errors}"
        )
        return result

    async def sync_primary_to_secondary(self) -> SyncResult:
        return await self._copy(self._primary, self._secondary)

    async def sync_secondary_to_primary(self) -> SyncResult:
        return await self._copy(self._secondary, self._primary)

    async def check_sync_status(self) -> SyncStatus:
        status = SyncStatus(
            primary_count=await self._primary.count_all(),
            secondary_count=await self._secondary.count_all(),
        )
        logger.info(
            f"[SYNC] {self._primary.name}={status.primary_count} "
            f"{self._secondary.name}={status.secondary_count} "
            f"difference={status.difference}"
        )
        return status

    async def reconcile(
        self, direction: SyncDirection = SyncDirection.PRIMARY_TO_SECONDARY
    ) -> ReconcileReport:
        """Run one copy direction, then report the resulting row counts."""
        if direction is SyncDirection.PRIMARY_TO_SECONDARY:
            result = await self.sync_primary_to_secondary()
        else:
            result = await self.sync_secondary_to_primary()
        status = await self.check_sync_status()
        if not status.in_sync:
            logger.warning(f"[SYNC] Stores still differ by {status.difference} rows")
        return ReconcileReport(direction=direction, result=result, status=status)
