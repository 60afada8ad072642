"""
Result Storage Factory.

Creates the appropriate ResultStorage implementation based on configuration.
"""

from __future__ import annotations

import logging

from src.arena.config import StorageBackend, StorageConfig
from src.arena.exceptions import StorageError
from src.arena.storage.memory import InMemoryResultStorage
from src.arena.storage.protocol import ResultStorage

logger = logging.getLogger(__name__)


async def create_storage(config: StorageConfig | None = None) -> ResultStorage:
    """
    Create a ResultStorage instance based on configuration.

    Raises:
        StorageError: If the backend is unknown
    """
    if config is None:
        config = StorageConfig()

    logger.info(f"Creating result storage with backend: {config.backend}")

    if config.backend == StorageBackend.MEMORY:
        return InMemoryResultStorage()

    raise StorageError(f"Unknown storage backend: {config.backend}")


__all__ = ["create_storage"]
