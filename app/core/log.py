"""
Logging setup shared by the API and the run_*.py scripts
"""
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Replace loguru's default sink with the project format."""
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=level)
    if log_file:
        logger.add(log_file, format=LOG_FORMAT, level=level, rotation="10 MB", encoding="utf-8")
