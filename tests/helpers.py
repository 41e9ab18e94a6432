"""Builders and in-memory fakes shared by the test modules."""

import base64
import struct
from collections import defaultdict
from collections.abc import Sequence

from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from src.db.store import BatchResult, DuplicateKeyError, TokenQuery, UpsertOutcome, utcnow
from src.parsers.pumpfun.constants import (
    BONDING_CURVE_DISCRIMINATOR,
    CREATE_EVENT_DISCRIMINATOR,
)
from src.parsers.pumpfun.models import TokenRecord


def pubkey(seed: int) -> str:
    return str(Pubkey.from_bytes(bytes([seed]) * 32))


MINT = pubkey(1)
BONDING_CURVE = pubkey(2)
USER = pubkey(3)
CREATOR = pubkey(4)


def borsh_string(value: str) -> bytes:
    raw = value.encode()
    return struct.pack("<I", len(raw)) + raw


def build_create_event_payload(
    *,
    name: str = "Test Token",
    symbol: str = "TEST",
    uri: str = "https://ipfs.example/meta.json",
    mint: str = MINT,
    bonding_curve: str = BONDING_CURVE,
    user: str = USER,
    creator: str = CREATOR,
    timestamp: int = 1_700_000_000,
    virtual_token_reserves: int = 1_073_000_000_000_000,
    virtual_sol_reserves: int = 30_000_000_000,
    real_token_reserves: int = 793_100_000_000_000,
    token_total_supply: int = 1_000_000_000_000_000,
) -> bytes:
    return (
        CREATE_EVENT_DISCRIMINATOR
        + borsh_string(name)
        + borsh_string(symbol)
        + borsh_string(uri)
        + bytes(Pubkey.from_string(mint))
        + bytes(Pubkey.from_string(bonding_curve))
        + bytes(Pubkey.from_string(user))
        + bytes(Pubkey.from_string(creator))
        + struct.pack("<q", timestamp)
        + struct.pack(
            "<QQQQ",
            virtual_token_reserves,
            virtual_sol_reserves,
            real_token_reserves,
            token_total_supply,
        )
    )


def program_data_line(payload: bytes) -> str:
    return f"Program data: {base64.b64encode(payload).decode()}"


def build_bonding_curve_data(*, complete: bool = False, creator: str = CREATOR) -> bytes:
    return (
        BONDING_CURVE_DISCRIMINATOR
        + struct.pack(
            "<QQQQQ",
            1_073_000_000_000_000,
            30_000_000_000,
            793_100_000_000_000,
            0,
            1_000_000_000_000_000,
        )
        + bytes([1 if complete else 0])
        + bytes(Pubkey.from_string(creator))
    )


def make_record(index: int = 1, **overrides) -> TokenRecord:
    values = {
        "bonding_curve_address": f"curve{index}",
        "token_address": f"mint{index}",
        "creator": CREATOR,
        "name": f"Token {index}",
        "symbol": f"TK{index}",
        "uri": f"https://ipfs.example/{index}.json",
    }
    values.update(overrides)
    return TokenRecord(**values)


class MemoryTokenStore:
    """Dict-backed store with the same upsert semantics as the real ones."""

    def __init__(self, name: str = "memory", *, fail_for: set[str] | None = None) -> None:
        self.name = name
        self.records: dict[str, TokenRecord] = {}
        self.fail_for = fail_for or set()
        self.upsert_calls: list[TokenRecord] = []
        self.batch_calls: list[int] = []

    async def ping(self) -> None:
        return None

    async def upsert_one(self, record: TokenRecord) -> UpsertOutcome:
        self.upsert_calls.append(record)
        if record.token_address in self.fail_for:
            raise OSError(f"write refused for {record.token_address}")
        for other in self.records.values():
            if (
                other.bonding_curve_address == record.bonding_curve_address
                and other.token_address != record.token_address
            ):
                raise DuplicateKeyError(record.bonding_curve_address)

        existing = self.records.get(record.token_address)
        if existing is None:
            now = utcnow()
            self.records[record.token_address] = record.model_copy(
                update={"created_at": record.created_at or now, "updated_at": now}
            )
            return UpsertOutcome.INSERTED
        merged = record.merged_onto(existing)
        if not merged.differs_from(existing):
            return UpsertOutcome.UNCHANGED
        self.records[record.token_address] = merged.model_copy(update={"updated_at": utcnow()})
        return UpsertOutcome.UPDATED

    async def upsert_batch(self, records: Sequence[TokenRecord]) -> BatchResult:
        self.batch_calls.append(len(records))
        result = BatchResult()
        for record in records:
            try:
                result.record(await self.upsert_one(record))
            except (OSError, DuplicateKeyError):
                result.errors += 1
        return result

    async def query_all(self, query: TokenQuery | None = None) -> list[TokenRecord]:
        return list(self.records.values())

    async def count_all(self) -> int:
        return len(self.records)

    async def distinct_bonding_curve_addresses(self) -> list[str]:
        return sorted({r.bonding_curve_address for r in self.records.values()})

    async def stats(self) -> dict[str, int]:
        completed = sum(1 for r in self.records.values() if r.complete)
        return {
            "total": len(self.records),
            "completed": completed,
            "active": len(self.records) - completed,
        }


class FakeRedis:
    """The handful of hash commands RedisTokenStore uses."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = defaultdict(dict)

    async def ping(self) -> bool:
        return True

    async def hget(self, key: str, field: str) -> str | None:
        return self.hashes[key].get(field)

    async def hset(self, key: str, field: str, value: str) -> int:
        created = field not in self.hashes[key]
        self.hashes[key][field] = value
        return int(created)

    async def hvals(self, key: str) -> list[str]:
        return list(self.hashes[key].values())

    async def hlen(self, key: str) -> int:
        return len(self.hashes[key])

    async def hkeys(self, key: str) -> list[str]:
        return list(self.hashes[key].keys())
