"""Reconcile the primary (PostgreSQL) and secondary (Redis) token stores.

Usage:
    python scripts/sync_stores.py status
    python scripts/sync_stores.py sync --to secondary
    python scripts/sync_stores.py sync --to primary
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger  # noqa: E402

from config.settings import settings  # noqa: E402
from src.db.database import create_engine  # noqa: E402
from src.db.redis import close_redis, create_redis  # noqa: E402
from src.db.redis_store import RedisTokenStore  # noqa: E402
from src.db.store import StoreUnavailableError  # noqa: E402
from src.db.token_store import PostgresTokenStore  # noqa: E402
from src.parsers.reconcile import StoreReconciler, SyncDirection  # noqa: E402
from src.utils.logger import setup_logger  # noqa: E402


async def run(args: argparse.Namespace) -> int:
    engine = create_engine(settings.database_url)
    redis = create_redis(settings.redis_url)
    try:
        primary = PostgresTokenStore(engine)
        secondary = RedisTokenStore(redis)
        await primary.ping()
        await secondary.ping()

        reconciler = StoreReconciler(
            primary,
            secondary,
            chunk_size=settings.sync_chunk_size,
            chunk_delay_sec=settings.sync_chunk_delay_sec,
        )
        if args.command == "status":
            status = await reconciler.check_sync_status()
            return 0 if status.in_sync else 2

        direction = (
            SyncDirection.PRIMARY_TO_SECONDARY
            if args.to == "secondary"
            else SyncDirection.SECONDARY_TO_PRIMARY
        )
        report = await reconciler.reconcile(direction)
        return 1 if report.result.errors else 0
    except StoreUnavailableError as e:
        logger.critical(f"[SYNC] {e}")
        return 1
    finally:
        await close_redis(redis)
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync tokens between primary and secondary stores")
    sub = parser.add_subparsers(dest="command", required=True)
    sync = sub.add_parser("sync", help="Copy every token into the target store")
    sync.add_argument("--to", choices=["primary", "secondary"], default="secondary")
    sub.add_parser("status", help="Compare row counts (exit 2 when they differ)")
    args = parser.parse_args()

    setup_logger(level="INFO", log_name="sync")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
