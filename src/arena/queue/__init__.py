"""
Work Queue Implementations.

Provides the WorkQueue protocol and implementations for distributing
work items to arena workers.

Implementations:
- InMemoryWorkQueue: Single-process runs and unit tests (no external dependencies)
"""

from src.arena.queue.protocol import WorkQueue
from src.arena.queue.memory import InMemoryWorkQueue
from src.arena.queue.factory import create_queue

__all__ = [
    "WorkQueue",
    "InMemoryWorkQueue",
    "create_queue",
]
