"""Secondary token store on Redis.

Layout:
  {prefix}:data    hash  token_address -> TokenRecord JSON
  {prefix}:curves  hash  bonding_curve_address -> token_address

The second hash enforces bonding curve uniqueness the same way the
primary's unique index does.
"""

from collections.abc import Sequence

from loguru import logger
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.db.store import (
    BatchResult,
    DuplicateKeyError,
    StoreUnavailableError,
    TokenQuery,
    UpsertOutcome,
    utcnow,
)
from src.parsers.pumpfun.models import TokenRecord


class RedisTokenStore:
    """Replica sink with the same upsert/query shape as the primary."""

    name = "redis"

    def __init__(self, redis: Redis, *, prefix: str = "tokens") -> None:
        self._redis = redis
        self._data_key = f"{prefix}:data"
        self._curves_key = f"{prefix}:curves"

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            raise StoreUnavailableError(f"secondary store unreachable: {e}") from e

    async def _load(self, token_address: str) -> TokenRecord | None:
        raw = await self._redis.hget(self._data_key, token_address)
        if raw is None:
            return None
        try:
            return TokenRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"[SECONDARY] Corrupt entry for {token_address[:12]}, overwriting")
            return None

    async def upsert_one(self, record: TokenRecord) -> UpsertOutcome:
        """Insert or update one token. Raises RedisError / DuplicateKeyError."""
        owner = await self._redis.hget(self._curves_key, record.bonding_curve_address)
        if owner is not None and owner != record.token_address:
            raise DuplicateKeyError(
                f"bonding curve {record.bonding_curve_address[:12]} belongs to {owner[:12]}"
            )

        existing = await self._load(record.token_address)
        now = utcnow()
        if existing is None:
            stored = record.model_copy(
                update={
                    "created_at": record.created_at or now,
                    "updated_at": record.updated_at or record.created_at or now,
                }
            )
            outcome = UpsertOutcome.INSERTED
        else:
            merged = record.merged_onto(existing)
            if not merged.differs_from(existing):
                return UpsertOutcome.UNCHANGED
            stored = merged.model_copy(update={"updated_at": now})
            outcome = UpsertOutcome.UPDATED

        await self._redis.hset(self._data_key, record.token_address, stored.model_dump_json())
        await self._redis.hset(self._curves_key, record.bonding_curve_address, record.token_address)
        return outcome

    async def upsert_batch(self, records: Sequence[TokenRecord]) -> BatchResult:
        result = BatchResult()
        for record in records:
            try:
                result.record(await self.upsert_one(record))
            except (RedisError, DuplicateKeyError) as e:
                result.errors += 1
                logger.error(f"[SECONDARY] Upsert failed for {record.token_address[:12]}: {e}")
        return result

    async def query_all(self, query: TokenQuery | None = None) -> list[TokenRecord]:
        query = query or TokenQuery()
        records: list[TokenRecord] = []
        for raw in await self._redis.hvals(self._data_key):
            try:
                records.append(TokenRecord.model_validate_json(raw))
            except ValidationError:
                continue

        if query.search_term:
            term = query.search_term.lower()
            records = [
                r
                for r in records
                if term in r.name.lower()
                or term in r.symbol.lower()
                or term in r.token_address.lower()
                or term in r.description.lower()
            ]
        if query.complete is not None:
            records = [r for r in records if r.complete is query.complete]

        records.sort(key=lambda r: (r.created_at is not None, r.created_at), reverse=True)
        start = query.offset or 0
        end = start + query.limit if query.limit else None
        return records[start:end]

    async def count_all(self) -> int:
        return await self._redis.hlen(self._data_key)

    async def distinct_bonding_curve_addresses(self) -> list[str]:
        return sorted(await self._redis.hkeys(self._curves_key))
