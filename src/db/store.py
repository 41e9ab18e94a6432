"""Store contract shared by the primary (PostgreSQL) and secondary (Redis) stores."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from src.parsers.pumpfun.models import TokenRecord


class StoreUnavailableError(RuntimeError):
    """Store could not be reached at startup."""


class DuplicateKeyError(ValueError):
    """bonding_curve_address already belongs to a different token."""


class UpsertOutcome(Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class BatchResult:
    inserted: int = 0
    updated: int = 0
    duplicates: int = 0
    errors: int = 0

    def record(self, outcome: UpsertOutcome) -> None:
        if outcome is UpsertOutcome.INSERTED:
            self.inserted += 1
        elif outcome is UpsertOutcome.UPDATED:
            self.updated += 1
        else:
            self.duplicates += 1

    def merge(self, other: "BatchResult") -> None:
        self.inserted += other.inserted
        self.updated += other.updated
        self.duplicates += other.duplicates
        self.errors += other.errors

    @property
    def written(self) -> int:
        return self.inserted + self.updated


@dataclass
class TokenQuery:
    limit: int | None = None
    offset: int | None = None
    search_term: str | None = None
    complete: bool | None = None


class TokenStore(Protocol):
    name: str

    async def ping(self) -> None: ...

    async def upsert_one(self, record: TokenRecord) -> UpsertOutcome: ...

    async def upsert_batch(self, records: Sequence[TokenRecord]) -> BatchResult: ...

    async def query_all(self, query: TokenQuery | None = None) -> list[TokenRecord]: ...

    async def count_all(self) -> int: ...

    async def distinct_bonding_curve_addresses(self) -> list[str]: ...


def utcnow() -> datetime:
    """Naive UTC timestamp; both stores keep timezone-less datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
