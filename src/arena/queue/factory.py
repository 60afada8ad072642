"""
Work Queue Factory.

Creates the appropriate WorkQueue implementation based on configuration.
"""

from __future__ import annotations

import logging

from src.arena.config import QueueBackend, QueueConfig
from src.arena.exceptions import QueueError
from src.arena.queue.memory import InMemoryWorkQueue
from src.arena.queue.protocol import WorkQueue

logger = logging.getLogger(__name__)


async def create_queue(config: QueueConfig | None = None) -> WorkQueue:
    """
    Create a WorkQueue instance based on configuration.

    Args:
        config: Queue configuration. If None, uses defaults (memory).

    Returns:
        WorkQueue implementation

    Raises:
        QueueError: If the backend is unknown

    Example:
        queue = await create_queue(QueueConfig(backend=QueueBackend.MEMORY, max_retries=5))
    """
    if config is None:
        config = QueueConfig()

    logger.info(f"Creating work queue with backend: {config.backend}")

    if config.backend == QueueBackend.MEMORY:
        return InMemoryWorkQueue(
            max_retries=config.max_retries,
            visibility_timeout_seconds=config.visibility_timeout_seconds,
        )

    raise QueueError(f"Unknown queue backend: {config.backend}")


__all__ = ["create_queue"]
