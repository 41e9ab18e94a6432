"""Entry point for the pump.fun token indexer."""

import asyncio
import signal
import sys

from loguru import logger

from src.db.store import StoreUnavailableError
from src.parsers.pumpfun.ws_client import ListenerStartError
from src.parsers.worker import run_indexer
from src.utils.logger import setup_logger


async def main() -> int:
    setup_logger(level="INFO")
    logger.info("Starting pump.fun token indexer...")

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    try:
        await run_indexer(shutdown_event)
    except (StoreUnavailableError, ListenerStartError) as e:
        logger.critical(f"Startup failed: {e}")
        return 1

    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
