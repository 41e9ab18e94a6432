"""Tests for the backfill job."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import base58
import pytest

from src.parsers.backfill import BackfillJob, diff_new_addresses
from src.parsers.pumpfun.decoder import decode_bonding_curve
from src.parsers.pumpfun.models import TokenMetadata
from src.parsers.solana_rpc.client import RpcError, RpcRateLimitedError
from tests.helpers import CREATOR, MemoryTokenStore, build_bonding_curve_data, make_record

PAST = datetime(2024, 1, 1, 12, 0, 0)


def _das_asset(name: str = "Das Token", symbol: str = "DAS", uri: str = "https://ipfs.example/das.json") -> dict:
    return {
        "id": "mint",
        "content": {
            "json_uri": uri,
            "metadata": {"name": name, "symbol": symbol},
            "files": [{"uri": "https://img.example/das.png"}],
        },
    }


def _job(primary, *, curves: dict | None = None, mints: dict | None = None, batch_size: int = 100):
    """Job whose reader resolves ``curves`` / ``mints`` keyed by bonding curve address."""
    curves = curves or {}
    mints = mints or {}
    rpc = MagicMock()
    rpc.get_asset = AsyncMock(return_value=_das_asset())
    rpc.get_program_accounts = AsyncMock(return_value=[])

    reader = MagicMock()
    reader.fetch_bonding_curve = AsyncMock(side_effect=lambda addr: curves.get(addr))
    reader.fetch_mint_from_bonding_curve_ata = AsyncMock(side_effect=lambda addr: mints.get(addr))
    reader.derive_bonding_curve_address = MagicMock(side_effect=lambda mint: f"curve-of-{mint}")

    fetcher = MagicMock()
    fetcher.fetch_metadata = AsyncMock(return_value=None)

    job = BackfillJob(rpc, reader, fetcher, primary, batch_size=batch_size)
    return job, rpc, reader, fetcher


def _curve(complete: bool = False):
    return decode_bonding_curve(build_bonding_curve_data(complete=complete))


def test_diff_new_addresses():
    assert diff_new_addresses(["A", "B", "C"], ["A"]) == ["B", "C"]
    assert diff_new_addresses(["A", "B", "B"], []) == ["A", "B"]
    assert diff_new_addresses(["A"], ["A", "Z"]) == []


@pytest.mark.asyncio
async def test_enumeration_filters_by_discriminator_and_size():
    job, rpc, _, _ = _job(MemoryTokenStore())
    rpc.get_program_accounts.return_value = [
        {"pubkey": "A", "account": {}},
        {"pubkey": "B", "account": {}},
    ]

    addresses = await job.list_all_bonding_curve_accounts_on_chain()

    assert addresses == ["A", "B"]
    program_id = rpc.get_program_accounts.await_args.args[0]
    kwargs = rpc.get_program_accounts.await_args.kwargs
    assert program_id == "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
    memcmp = kwargs["filters"][0]["memcmp"]
    assert memcmp["offset"] == 0
    assert base58.b58decode(memcmp["bytes"]) == bytes([23, 183, 248, 55, 96, 216, 172, 96])
    assert kwargs["filters"][1] == {"dataSize": 81}


@pytest.mark.asyncio
async def test_enumeration_retries_rate_limit_then_gives_up():
    job, rpc, _, _ = _job(MemoryTokenStore())
    rpc.get_program_accounts.side_effect = RpcRateLimitedError("Too many requests", code=429)

    with patch("src.parsers.solana_rpc.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        assert await job.list_all_bonding_curve_accounts_on_chain() is None

    assert rpc.get_program_accounts.await_count == 5
    assert [c.args[0] for c in sleep.await_args_list] == [1.0] * 4


@pytest.mark.asyncio
async def test_enumeration_recovers_after_rate_limit():
    job, rpc, _, _ = _job(MemoryTokenStore())
    rpc.get_program_accounts.side_effect = [
        RpcRateLimitedError("Too many requests", code=429),
        [{"pubkey": "A"}],
    ]
    with patch("src.parsers.solana_rpc.client.asyncio.sleep", new_callable=AsyncMock):
        assert await job.list_all_bonding_curve_accounts_on_chain() == ["A"]


@pytest.mark.asyncio
async def test_enumeration_terminal_error_returns_none():
    job, rpc, _, _ = _job(MemoryTokenStore())
    rpc.get_program_accounts.side_effect = RpcError("method not found", code=-32601)
    assert await job.list_all_bonding_curve_accounts_on_chain() is None
    assert rpc.get_program_accounts.await_count == 1


@pytest.mark.asyncio
async def test_update_processes_only_new_addresses(primary_store):
    existing = make_record(
        0,
        bonding_curve_address="A",
        token_address="mintA",
        created_at=PAST,
        updated_at=PAST,
    )
    await primary_store.upsert_one(existing)

    job, rpc, reader, _ = _job(
        primary_store,
        curves={"A": _curve(), "B": _curve(), "C": _curve(complete=True)},
        mints={"A": "mintA", "B": "mintB", "C": "mintC"},
    )
    rpc.get_program_accounts.return_value = [{"pubkey": "A"}, {"pubkey": "B"}, {"pubkey": "C"}]

    report = await job.update_token_list()

    assert report is not None
    assert report.total == 2
    assert report.batch.inserted == 2
    assert [c.args[0] for c in reader.fetch_bonding_curve.await_args_list] == ["B", "C"]
    assert await primary_store.count_all() == 3

    untouched = await primary_store.get_by_bonding_curve("A")
    assert untouched is not None
    assert untouched.updated_at == PAST
    assert untouched.name == existing.name

    c = await primary_store.get_by_token_address("mintC")
    assert c is not None
    assert c.complete is True
    assert c.name == "Das Token"
    assert c.uri == "https://ipfs.example/das.json"
    assert c.image == "https://img.example/das.png"


@pytest.mark.asyncio
async def test_update_aborts_when_enumeration_fails():
    primary = MemoryTokenStore()
    job, rpc, reader, _ = _job(primary)
    rpc.get_program_accounts.side_effect = RpcError("boom")

    assert await job.update_token_list() is None
    reader.fetch_bonding_curve.assert_not_awaited()


@pytest.mark.asyncio
async def test_batches_are_flushed_by_size():
    primary = MemoryTokenStore()
    addresses = [f"curve{i}" for i in range(5)]
    job, _, _, _ = _job(
        primary,
        curves={a: _curve() for a in addresses},
        mints={a: f"mint-{a}" for a in addresses},
        batch_size=2,
    )

    report = await job.process_addresses(addresses)

    assert primary.batch_calls == [2, 2, 1]
    assert report.processed == 5
    assert report.batch.inserted == 5


@pytest.mark.asyncio
async def test_one_bad_address_does_not_stop_the_loop():
    primary = MemoryTokenStore()
    job, _, reader, _ = _job(
        primary,
        curves={"B": _curve(), "C": _curve()},
        mints={"B": "mintB", "C": "mintC"},
    )
    resolve = reader.fetch_bonding_curve.side_effect

    async def flaky(addr):
        if addr == "B":
            raise RuntimeError("unexpected")
        return resolve(addr)

    reader.fetch_bonding_curve.side_effect = flaky

    report = await job.process_addresses(["A", "B", "C"])

    assert report.skipped == 2
    assert set(primary.records) == {"mintC"}


@pytest.mark.asyncio
async def test_metadata_document_supplies_description_and_image():
    primary = MemoryTokenStore()
    job, _, _, fetcher = _job(primary, curves={"B": _curve()}, mints={"B": "mintB"})
    fetcher.fetch_metadata.return_value = TokenMetadata(
        name="Doc Name", symbol="DOC", description="from json", image="https://img.example/doc.png"
    )

    record = await job.build_record("B")

    assert record is not None
    assert record.name == "Das Token"
    assert record.symbol == "DAS"
    assert record.description == "from json"
    assert record.image == "https://img.example/doc.png"
    assert record.creator == CREATOR


@pytest.mark.asyncio
async def test_missing_das_asset_keeps_defaults():
    primary = MemoryTokenStore()
    job, rpc, _, _ = _job(primary, curves={"B": _curve()}, mints={"B": "mintB"})
    rpc.get_asset.side_effect = RpcError("Asset Not Found", code=-32000)

    record = await job.build_record("B")

    assert record is not None
    assert record.name == "Unknown Token"
    assert record.symbol == "UNKNOWN"
    assert record.description == ""


@pytest.mark.asyncio
async def test_reprocessing_marks_completion():
    primary = MemoryTokenStore()
    curves = {"B": _curve(complete=False)}
    job, _, _, _ = _job(primary, curves=curves, mints={"B": "mintB"})

    assert await job.add_single_token("B")
    assert primary.records["mintB"].complete is False

    curves["B"] = _curve(complete=True)
    assert await job.add_single_token("B")
    assert primary.records["mintB"].complete is True


@pytest.mark.asyncio
async def test_add_single_token_reports_failure():
    job, _, _, _ = _job(MemoryTokenStore())
    assert await job.add_single_token("missing") is False


@pytest.mark.asyncio
async def test_fetch_by_token_address_uses_derived_curve():
    job, _, reader, _ = _job(MemoryTokenStore(), curves={"curve-of-mintX": _curve()})

    record = await job.fetch_by_token_address("mintX")

    assert record is not None
    assert record.bonding_curve_address == "curve-of-mintX"
    assert record.token_address == "mintX"
    reader.derive_bonding_curve_address.assert_called_once_with("mintX")


@pytest.mark.asyncio
async def test_show_database_stats(primary_store):
    await primary_store.upsert_one(make_record(1, complete=True))
    await primary_store.upsert_one(make_record(2))
    job, _, _, _ = _job(primary_store)

    stats = await job.show_database_stats()

    assert stats == {"total": 2, "completed": 1, "active": 1, "bonding_curves": 2}
