"""Backfill job: recover tokens the live listener missed.

Enumerates every BondingCurve account on chain in one getProgramAccounts
call, diffs against the bonding curves already in the primary store and
runs the delta through reader -> mint -> DAS/metadata -> batched upsert.
"""

from dataclasses import dataclass, field

import base58
import httpx
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from src.db.store import BatchResult
from src.db.token_store import PostgresTokenStore
from src.parsers.metadata_fetcher import MetadataFetcher, extract_image_url
from src.parsers.pumpfun.account_reader import BondingCurveReader
from src.parsers.pumpfun.constants import (
    BONDING_CURVE_ACCOUNT_SIZE,
    BONDING_CURVE_DISCRIMINATOR,
    DEFAULT_TOKEN_NAME,
    DEFAULT_TOKEN_SYMBOL,
    PUMP_PROGRAM_ID,
)
from src.parsers.pumpfun.models import TokenMetadata, TokenRecord
from src.parsers.solana_rpc.client import RpcError, SolanaRpcClient, retry_rate_limited


@dataclass
class BackfillReport:
    total: int = 0
    processed: int = 0
    skipped: int = 0
    batch: BatchResult = field(default_factory=BatchResult)


def diff_new_addresses(on_chain: list[str], persisted: list[str]) -> list[str]:
    """on_chain minus persisted, keeping on-chain order."""
    known = set(persisted)
    seen: set[str] = set()
    new: list[str] = []
    for address in on_chain:
        if address in known or address in seen:
            continue
        seen.add(address)
        new.append(address)
    return new


def _asset_content(asset: dict | None) -> dict:
    if not isinstance(asset, dict):
        return {}
    content = asset.get("content")
    return content if isinstance(content, dict) else {}


class BackfillJob:
    def __init__(
        self,
        rpc: SolanaRpcClient,
        reader: BondingCurveReader,
        fetcher: MetadataFetcher,
        primary: PostgresTokenStore,
        *,
        program_id: str = PUMP_PROGRAM_ID,
        batch_size: int = 100,
        max_attempts: int = 5,
        cooldown_sec: float = 1.0,
    ) -> None:
        self._rpc = rpc
        self._reader = reader
        self._fetcher = fetcher
        self._primary = primary
        self._program_id = program_id
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._cooldown = cooldown_sec

    async def list_all_bonding_curve_accounts_on_chain(self) -> list[str] | None:
        """All BondingCurve account addresses, or None if the call failed."""
        filters = [
            {"memcmp": {"offset": 0, "bytes": base58.b58encode(BONDING_CURVE_DISCRIMINATOR).decode()}},
            {"dataSize": BONDING_CURVE_ACCOUNT_SIZE},
        ]
        try:
            accounts = await retry_rate_limited(
                lambda: self._rpc.get_program_accounts(
                    self._program_id,
                    filters=filters,
                    data_slice={"offset": 0, "length": 0},
                ),
                label="getProgramAccounts",
                max_attempts=self._max_attempts,
                cooldown_sec=self._cooldown,
            )
        except (RpcError, httpx.HTTPError) as e:
            logger.error(f"[BACKFILL] getProgramAccounts failed: {e}")
            return None

        addresses = [a["pubkey"] for a in accounts if isinstance(a, dict) and a.get("pubkey")]
        logger.info(f"[BACKFILL] Found {len(addresses)} bonding curve accounts on chain")
        return addresses

    async def resolve_metadata(self, mint: str) -> TokenMetadata | None:
        """DAS getAsset for name/symbol/uri, then the JSON document for the rest.

        None when DAS has nothing for this mint.
        """
        try:
            asset = await retry_rate_limited(
                lambda: self._rpc.get_asset(mint),
                label="getAsset",
                max_attempts=self._max_attempts,
                cooldown_sec=self._cooldown,
            )
        except (RpcError, httpx.HTTPError) as e:
            logger.warning(f"[BACKFILL] getAsset failed for {mint[:12]}: {e}")
            return None

        content = _asset_content(asset)
        if not content:
            logger.warning(f"[BACKFILL] No DAS content for {mint[:12]}")
            return None

        meta = content.get("metadata") if isinstance(content.get("metadata"), dict) else {}
        uri = content.get("json_uri") or ""
        name = meta.get("name") or ""
        symbol = meta.get("symbol") or ""
        description = meta.get("description") or ""
        image = extract_image_url(content)

        fetched = await self._fetcher.fetch_metadata(uri) if uri else None
        if fetched is not None:
            name = name or fetched.name
            symbol = symbol or fetched.symbol
            description = fetched.description or description
            image = fetched.image or image

        return TokenMetadata(
            name=name or DEFAULT_TOKEN_NAME,
            symbol=symbol or DEFAULT_TOKEN_SYMBOL,
            uri=uri,
            description=description,
            image=image,
        )

    async def build_record(self, bonding_curve_address: str) -> TokenRecord | None:
        curve = await self._reader.fetch_bonding_curve(bonding_curve_address)
        if curve is None:
            logger.warning(f"[BACKFILL] No bonding curve data for {bonding_curve_address[:12]}")
            return None

        mint = await self._reader.fetch_mint_from_bonding_curve_ata(bonding_curve_address)
        if mint is None:
            logger.warning(f"[BACKFILL] No mint for {bonding_curve_address[:12]}")
            return None

        metadata = await self.resolve_metadata(mint)
        return TokenRecord.from_bonding_curve(bonding_curve_address, mint, curve, metadata)

    async def fetch_by_token_address(self, mint: str) -> TokenRecord | None:
        """Build a record starting from the mint instead of the bonding curve."""
        try:
            bonding_curve_address = self._reader.derive_bonding_curve_address(mint)
        except ValueError as e:
            logger.warning(f"[BACKFILL] Invalid mint {mint!r}: {e}")
            return None

        curve = await self._reader.fetch_bonding_curve(bonding_curve_address)
        if curve is None:
            return None
        metadata = await self.resolve_metadata(mint)
        return TokenRecord.from_bonding_curve(bonding_curve_address, mint, curve, metadata)

    async def _flush(self, batch: list[TokenRecord], report: BackfillReport) -> None:
        logger.info(f"[BACKFILL] Storing batch of {len(batch)} tokens")
        try:
            result = await self._primary.upsert_batch(batch)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"[BACKFILL] Batch write failed: {e}")
            result = BatchResult(errors=len(batch))
        report.batch.merge(result)
        logger.info(
            f"[BACKFILL] Progress {report.processed}/{report.total} | "
            f"inserted={result.inserted} updated={result.updated} "
            f"duplicates={result.duplicates} errors={result.errors}"
        )

    async def process_addresses(self, addresses: list[str]) -> BackfillReport:
        """Per-address pipeline with batched writes. One failure never stops the loop."""
        report = BackfillReport(total=len(addresses))
        batch: list[TokenRecord] = []

        for address in addresses:
            report.processed += 1
            try:
                record = await self.build_record(address)
            except Exception as e:
                logger.error(f"[BACKFILL] Error processing {address[:12]}: {e}")
                record = None

            if record is None:
                report.skipped += 1
            else:
                batch.append(record)

            if len(batch) >= self._batch_size:
                await self._flush(batch, report)
                batch = []

        if batch:
            await self._flush(batch, report)

        logger.info(
            f"[BACKFILL] Done: {report.batch.inserted} inserted, {report.batch.updated} updated, "
            f"{report.batch.duplicates} unchanged, {report.batch.errors} errors, "
            f"{report.skipped} skipped"
        )
        return report

    async def update_token_list(self) -> BackfillReport | None:
        """Process only bonding curves not yet in the primary store."""
        on_chain = await self.list_all_bonding_curve_accounts_on_chain()
        if on_chain is None:
            logger.error("[BACKFILL] Could not enumerate bonding curves, aborting")
            return None

        persisted = await self._primary.distinct_bonding_curve_addresses()
        new_addresses = diff_new_addresses(on_chain, persisted)
        logger.info(
            f"[BACKFILL] on_chain={len(on_chain)} persisted={len(persisted)} "
            f"new={len(new_addresses)}"
        )
        if not new_addresses:
            logger.info("[BACKFILL] Already up to date")
            return BackfillReport()

        return await self.process_addresses(new_addresses)

    async def add_single_token(self, bonding_curve_address: str) -> bool:
        try:
            record = await self.build_record(bonding_curve_address)
            if record is None:
                logger.warning(f"[BACKFILL] Failed to add token for {bonding_curve_address}")
                return False
            outcome = await self._primary.upsert_one(record)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"[BACKFILL] Error adding {bonding_curve_address}: {e}")
            return False

        logger.info(
            f"[BACKFILL] {outcome.value} {record.symbol} ({record.token_address}) "
            f"for bonding curve {bonding_curve_address}"
        )
        return True

    async def show_database_stats(self) -> dict[str, int]:
        stats = await self._primary.stats()
        stats["bonding_curves"] = len(await self._primary.distinct_bonding_curve_addresses())
        logger.info(
            f"[BACKFILL] Database: bonding_curves={stats['bonding_curves']} "
            f"total={stats['total']} completed={stats['completed']} active={stats['active']}"
        )
        return stats
