"""Backfill tokens the live indexer missed.

Commands:
  update              enumerate all bonding curves on chain, process the new ones
  add <bonding_curve> process one bonding curve
  process <addr>...   process an explicit list of bonding curves
  stats               print primary store statistics

Usage:
    python scripts/backfill.py update
    python scripts/backfill.py add 7xKX...
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger  # noqa: E402

from config.settings import settings  # noqa: E402
from src.db.database import create_engine  # noqa: E402
from src.db.store import StoreUnavailableError  # noqa: E402
from src.db.token_store import PostgresTokenStore  # noqa: E402
from src.parsers.backfill import BackfillJob  # noqa: E402
from src.parsers.metadata_fetcher import MetadataFetcher  # noqa: E402
from src.parsers.pumpfun.account_reader import BondingCurveReader  # noqa: E402
from src.parsers.solana_rpc.client import SolanaRpcClient  # noqa: E402
from src.utils.logger import setup_logger  # noqa: E402


async def run(args: argparse.Namespace) -> int:
    engine = create_engine(settings.database_url)
    rpc = SolanaRpcClient(
        settings.rpc_url,
        timeout=settings.rpc_timeout_sec,
        commitment=settings.log_commitment,
    )
    fetcher = MetadataFetcher(
        timeout=settings.metadata_timeout_sec,
        max_retries=settings.metadata_max_retries,
    )
    try:
        primary = PostgresTokenStore(engine)
        await primary.ping()
        reader = BondingCurveReader(
            rpc,
            program_id=settings.pump_program_id,
            max_attempts=settings.rpc_max_attempts,
            cooldown_sec=settings.rpc_rate_limit_cooldown_sec,
        )
        job = BackfillJob(
            rpc,
            reader,
            fetcher,
            primary,
            program_id=settings.pump_program_id,
            batch_size=settings.backfill_batch_size,
            max_attempts=settings.rpc_max_attempts,
            cooldown_sec=settings.rpc_rate_limit_cooldown_sec,
        )

        if args.command == "update":
            report = await job.update_token_list()
            if report is None:
                return 1
            await job.show_database_stats()
        elif args.command == "add":
            if not await job.add_single_token(args.bonding_curve):
                return 1
        elif args.command == "process":
            await job.process_addresses(args.addresses)
            await job.show_database_stats()
        else:
            await job.show_database_stats()
        return 0
    except StoreUnavailableError as e:
        logger.critical(f"[BACKFILL] {e}")
        return 1
    finally:
        await fetcher.close()
        await rpc.close()
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill pump.fun tokens into the primary store")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("update", help="Process bonding curves not yet stored")
    add = sub.add_parser("add", help="Process a single bonding curve")
    add.add_argument("bonding_curve")
    process = sub.add_parser("process", help="Process explicit bonding curve addresses")
    process.add_argument("addresses", nargs="+")
    sub.add_parser("stats", help="Show primary store statistics")
    args = parser.parse_args()

    setup_logger(level="INFO", log_name="backfill")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
