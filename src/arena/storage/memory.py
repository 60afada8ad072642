"""
In-Memory Result Storage.

Dictionary-backed ResultStorage for tests and single-process runs.
"""

from __future__ import annotations

import asyncio
import logging

from src.arena.exceptions import (
    InvalidJobIDError,
    ResultNotFoundError,
    StorageClosedError,
)
from src.arena.results import JobResults, ResultInfo

logger = logging.getLogger(__name__)


class InMemoryResultStorage:
    """
    In-memory implementation of ResultStorage.

    Results are deep-copied on the way in and on the way out, so neither
    the caller's object nor the stored one can be mutated through the other.
    A single lock guards the map.
    """

    def __init__(self) -> None:
        self._results: dict[str, JobResults] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    def _check(self, job_id: str | None = None) -> None:
        if self._closed:
            raise StorageClosedError()
        if job_id is not None and not job_id:
            raise InvalidJobIDError()

    async def store(self, job_id: str, results: JobResults) -> None:
        async with self._lock:
            self._check(job_id)
            self._results[job_id] = results.model_copy(deep=True)
        logger.info(f"Stored results for job {job_id}")

    async def get(self, job_id: str) -> JobResults:
        async with self._lock:
            self._check(job_id)
            stored = self._results.get(job_id)
            if stored is None:
                raise ResultNotFoundError(job_id)
            return stored.model_copy(deep=True)

    async def list(self, prefix: str = "") -> list[str]:
        async with self._lock:
            self._check()
            return sorted(job_id for job_id in self._results if job_id.startswith(prefix))

    async def list_with_info(self, prefix: str = "") -> list[ResultInfo]:
        async with self._lock:
            self._check()
            return [
                _result_info(job_id, self._results[job_id])
                for job_id in sorted(self._results)
                if job_id.startswith(prefix)
            ]

    async def delete(self, job_id: str) -> None:
        async with self._lock:
            self._check(job_id)
            if self._results.pop(job_id, None) is None:
                raise ResultNotFoundError(job_id)
        logger.info(f"Deleted results for job {job_id}")

    async def close(self) -> None:
        async with self._lock:
            self._closed = True
            self._results.clear()
        logger.info("In-memory result storage closed")


def _result_info(job_id: str, results: JobResults) -> ResultInfo:
    summary = results.summary
    return ResultInfo(
        job_id=job_id,
        namespace=results.namespace,
        completed_at=results.completed_at,
        size_bytes=len(results.model_dump_json().encode("utf-8")),
        total_items=summary.total_items if summary else 0,
        passed_items=summary.passed_items if summary else 0,
        failed_items=summary.failed_items if summary else 0,
    )


__all__ = ["InMemoryResultStorage"]
