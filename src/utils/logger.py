import os
import sys

from loguru import logger


def setup_logger(*, level: str = "INFO", log_name: str = "indexer") -> None:
    """Configure loguru for the indexer processes.

    Console level controlled by LOG_LEVEL env (default: INFO).
    File always captures DEBUG so missed tokens can be traced after the fact.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()

    logger.add(
        sys.stdout,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
            "<level>{message}</level>"
        ),
        level=console_level,
        colorize=True,
    )

    logger.add(
        f"logs/{log_name}_{{time:YYYY-MM-DD}}.log",
        rotation="50 MB",
        retention="7 days",
        compression="gz",
        level="DEBUG",
    )
