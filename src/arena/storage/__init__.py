"""
Result Storage.

Persists consolidated job results for later lookup, listing, and deletion.

Implementations:
- InMemoryResultStorage: Single-process runs and unit tests
"""

from src.arena.storage.protocol import ResultStorage
from src.arena.storage.memory import InMemoryResultStorage
from src.arena.storage.factory import create_storage

__all__ = [
    "ResultStorage",
    "InMemoryResultStorage",
    "create_storage",
]
