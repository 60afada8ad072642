"""
Result Storage Protocol.

Uses typing.Protocol for duck-typed interface definitions.
Any class implementing these methods qualifies as a ResultStorage.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from src.arena.results import JobResults, ResultInfo


@runtime_checkable
class ResultStorage(Protocol):
    """
    Key-value store of consolidated job results, keyed by job ID.

    Implementations must isolate callers: mutating an object passed to
    store() or returned by get() must never change what the store holds.

    Every operation taking a job ID raises InvalidJobIDError for "", and
    every operation raises StorageClosedError after close().
    """

    async def store(self, job_id: str, results: JobResults) -> None:
        """Save (or replace) the results of a job."""
        ...

    async def get(self, job_id: str) -> JobResults:
        """Fetch the results of a job. Raises ResultNotFoundError if absent."""
        ...

    async def list(self, prefix: str = "") -> list[str]:
        """Job IDs starting with prefix, lexicographically sorted."""
        ...

    async def list_with_info(self, prefix: str = "") -> list[ResultInfo]:
        """
        Listing entries for job IDs starting with prefix.

        Entries are sorted by job ID and carry the serialized size of the
        stored results plus summary counts (zero when no summary is stored).
        """
        ...

    async def delete(self, job_id: str) -> None:
        """Remove the results of a job. Raises ResultNotFoundError if absent."""
        ...

    async def close(self) -> None:
        """Permanently close the store and release its contents."""
        ...


__all__ = ["ResultStorage"]
