from __future__ import annotations

from loguru import logger


def log_db_error(operation: str, exc: Exception) -> None:
    logger.error("Registry operation {} failed ({}): {}", operation, type(exc).__name__, exc)
