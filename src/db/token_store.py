"""Primary token store on SQLAlchemy async (PostgreSQL in production).

Upserts are keyed on token_address and only touch a row (and its
updated_at) when a content field actually differs. ``complete`` is
one-way: an incoming False never overwrites a stored True.

The upsert statement is built for the engine's dialect so the same code
runs against SQLite in tests.
"""

from collections.abc import Sequence
from datetime import datetime

from loguru import logger
from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.db.store import (
    BatchResult,
    StoreUnavailableError,
    TokenQuery,
    UpsertOutcome,
)
from src.models.base import Base
from src.models.token import Token
from src.parsers.pumpfun.models import TokenRecord

_TEXT_FIELDS = ("creator", "name", "symbol", "uri", "description", "image")


def _sanitize(val: str) -> str:
    """Strip null bytes PostgreSQL rejects in text columns."""
    return val.replace("\x00", "").strip()


def _row_values(record: TokenRecord) -> dict:
    values = {
        "bonding_curve_address": record.bonding_curve_address,
        "token_address": record.token_address,
        "complete": record.complete,
    }
    for field in _TEXT_FIELDS:
        values[field] = _sanitize(getattr(record, field) or "")
    if record.created_at is not None:
        values["created_at"] = record.created_at
        values["updated_at"] = record.updated_at or record.created_at
    return values


def _to_record(row: Token) -> TokenRecord:
    return TokenRecord(
        bonding_curve_address=row.bonding_curve_address,
        token_address=row.token_address,
        complete=bool(row.complete),
        creator=row.creator,
        name=row.name,
        symbol=row.symbol,
        uri=row.uri or "",
        description=row.description or "",
        image=row.image or "",
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class PostgresTokenStore:
    """Durable source of truth for "has this token been seen"."""

    name = "postgres"

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._dialect = engine.dialect.name
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    async def ping(self) -> None:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"primary store unreachable: {e}") from e

    async def create_tables(self) -> None:
        """Create the schema directly (tests / local dev; prod uses alembic)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def _upsert_stmt(self, record: TokenRecord):
        insert = pg_insert if self._dialect == "postgresql" else sqlite_insert
        stmt = insert(Token).values(**_row_values(record))
        excluded = stmt.excluded
        set_ = {field: getattr(excluded, field) for field in _TEXT_FIELDS}
        set_["complete"] = or_(Token.complete, excluded.complete)
        set_["updated_at"] = func.now()
        changed = or_(
            and_(excluded.complete, Token.complete.is_(False)),
            *[
                getattr(Token, field).is_distinct_from(getattr(excluded, field))
                for field in _TEXT_FIELDS
            ],
        )
        return stmt.on_conflict_do_update(
            index_elements=[Token.token_address],
            set_=set_,
            where=changed,
        ).returning(Token.id)

    async def _upsert(self, session: AsyncSession, record: TokenRecord) -> UpsertOutcome:
        existed = await session.scalar(
            select(Token.id).where(Token.token_address == record.token_address)
        )
        result = await session.execute(self._upsert_stmt(record))
        if result.first() is None:
            return UpsertOutcome.UNCHANGED
        return UpsertOutcome.UPDATED if existed is not None else UpsertOutcome.INSERTED

    async def upsert_one(self, record: TokenRecord) -> UpsertOutcome:
        """Insert or update one token. Raises SQLAlchemyError on failure."""
        async with self._session_factory() as session, session.begin():
            return await self._upsert(session, record)

    async def upsert_batch(self, records: Sequence[TokenRecord]) -> BatchResult:
        """Upsert a batch in one transaction.

        If the transaction fails (e.g. a bonding curve collision), the
        batch is replayed record by record so one bad row costs one error.
        """
        result = BatchResult()
        if not records:
            return result

        try:
            async with self._session_factory() as session, session.begin():
                outcomes = [await self._upsert(session, record) for record in records]
        except SQLAlchemyError as e:
            logger.warning(
                f"[PRIMARY] Batch of {len(records)} failed ({type(e).__name__}), "
                f"retrying per record"
            )
            for record in records:
                try:
                    result.record(await self.upsert_one(record))
                except SQLAlchemyError as row_error:
                    result.errors += 1
                    logger.error(
                        f"[PRIMARY] Upsert failed for {record.token_address[:12]}: {row_error}"
                    )
            return result

        for outcome in outcomes:
            result.record(outcome)
        return result

    async def query_all(self, query: TokenQuery | None = None) -> list[TokenRecord]:
        query = query or TokenQuery()
        stmt = select(Token)

        if query.search_term:
            pattern = f"%{query.search_term}%"
            stmt = stmt.where(
                or_(
                    Token.name.ilike(pattern),
                    Token.symbol.ilike(pattern),
                    Token.token_address.ilike(pattern),
                    Token.description.ilike(pattern),
                )
            )
        if query.complete is not None:
            stmt = stmt.where(Token.complete.is_(query.complete))

        stmt = stmt.order_by(Token.created_at.desc(), Token.id.desc())
        if query.limit:
            stmt = stmt.limit(query.limit)
        if query.offset:
            stmt = stmt.offset(query.offset)

        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [_to_record(row) for row in rows]

    async def count_all(self) -> int:
        async with self._session_factory() as session:
            return await session.scalar(select(func.count()).select_from(Token)) or 0

    async def distinct_bonding_curve_addresses(self) -> list[str]:
        stmt = (
            select(Token.bonding_curve_address)
            .where(Token.bonding_curve_address.is_not(None))
            .where(Token.bonding_curve_address != "")
            .distinct()
            .order_by(Token.bonding_curve_address)
        )
        async with self._session_factory() as session:
            addresses = list((await session.scalars(stmt)).all())
        logger.debug(f"[PRIMARY] {len(addresses)} distinct bonding curve addresses")
        return addresses

    async def get_by_token_address(self, token_address: str) -> TokenRecord | None:
        async with self._session_factory() as session:
            row = await session.scalar(select(Token).where(Token.token_address == token_address))
        return _to_record(row) if row else None

    async def get_by_bonding_curve(self, bonding_curve_address: str) -> TokenRecord | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(Token).where(Token.bonding_curve_address == bonding_curve_address)
            )
        return _to_record(row) if row else None

    async def recent(self, limit: int = 50) -> list[TokenRecord]:
        return await self.query_all(TokenQuery(limit=limit))

    async def created_after(self, timestamp: datetime) -> list[TokenRecord]:
        stmt = (
            select(Token)
            .where(Token.created_at > timestamp)
            .order_by(Token.created_at.desc(), Token.id.desc())
        )
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [_to_record(row) for row in rows]

    async def stats(self) -> dict[str, int]:
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(Token)) or 0
            completed = (
                await session.scalar(
                    select(func.count()).select_from(Token).where(Token.complete.is_(True))
                )
                or 0
            )
        return {"total": total, "completed": completed, "active": total - completed}
