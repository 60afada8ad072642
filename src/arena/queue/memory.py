"""
In-Memory Work Queue Implementation.

Reference implementation of WorkQueue. Suitable for tests and
single-process runs: no persistence, and the visibility timeout is only
enforced when a caller runs the stalled-item sweep.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.arena.exceptions import (
    DuplicateItemError,
    ItemNotFoundError,
    JobNotFoundError,
    QueueClosedError,
    QueueEmptyError,
)
from src.arena.models import JobProgress, WorkItem, WorkItemStatus, _now_utc

logger = logging.getLogger(__name__)

VISIBILITY_TIMEOUT_ERROR = "visibility timeout exceeded"


@dataclass
class JobState:
    """State for a single job. Every item is in exactly one of the four sets."""

    # Items waiting to be popped, oldest first
    pending: deque[WorkItem] = field(default_factory=deque)

    # Items claimed by workers (item_id -> item)
    processing: dict[str, WorkItem] = field(default_factory=dict)

    # Terminal items (item_id -> item)
    completed: dict[str, WorkItem] = field(default_factory=dict)
    failed: dict[str, WorkItem] = field(default_factory=dict)

    # Every item ID ever pushed to the job
    item_ids: set[str] = field(default_factory=set)

    # First successful pop
    started_at: datetime | None = None

    # Guards all four sets
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def total(self) -> int:
        return len(self.pending) + len(self.processing) + len(self.completed) + len(self.failed)


class InMemoryWorkQueue:
    """
    In-memory implementation of WorkQueue.

    Locking is two-level: `_jobs_lock` guards the job_id -> JobState map and
    is held only to look up, create, or drop job state; each JobState has its
    own lock serializing every transition of that job. The map lock is never
    acquired while a job lock is held, so unrelated jobs progress
    independently.

    Items are frozen models; each transition stores a new instance, so values
    returned to callers are never shared mutable state.
    """

    def __init__(self, max_retries: int = 3, visibility_timeout_seconds: int = 300):
        """
        Initialize the in-memory queue.

        Args:
            max_retries: Retry budget for items pushed without max_attempts
            visibility_timeout_seconds: Default idle threshold for the stalled sweep
        """
        self._max_retries = max_retries
        self._visibility_timeout_seconds = visibility_timeout_seconds
        self._jobs: dict[str, JobState] = {}
        self._jobs_lock = asyncio.Lock()
        self._closed = False

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def visibility_timeout_seconds(self) -> int:
        return self._visibility_timeout_seconds

    async def _get_job(self, job_id: str, create: bool = False) -> JobState | None:
        """Look up (or create) a job's state under the map lock."""
        async with self._jobs_lock:
            if self._closed:
                raise QueueClosedError()
            state = self._jobs.get(job_id)
            if state is None and create:
                state = JobState()
                self._jobs[job_id] = state
            return state

    async def _require_job(self, job_id: str) -> JobState:
        state = await self._get_job(job_id)
        if state is None:
            raise JobNotFoundError(job_id)
        return state

    def _check_open(self) -> None:
        """Re-check closure after waiting on a job lock. Caller holds state.lock."""
        if self._closed:
            raise QueueClosedError()

    # =========================================================================
    # Push / Pop
    # =========================================================================

    async def push(self, job_id: str, items: Sequence[WorkItem]) -> None:
        """Append items to the job's pending sequence in argument order."""
        if self._closed:
            raise QueueClosedError()
        if not items:
            return

        batch_ids: set[str] = set()
        for item in items:
            if item.id in batch_ids:
                raise DuplicateItemError(job_id, item.id)
            batch_ids.add(item.id)

        # Batch duplicates are rejected before the job entry is created
        state = await self._get_job(job_id, create=True)
        now = _now_utc()

        async with state.lock:
            self._check_open()
            for item in items:
                if item.id in state.item_ids:
                    raise DuplicateItemError(job_id, item.id)

            for item in items:
                state.pending.append(
                    item.model_copy(
                        update={
                            "job_id": job_id,
                            "status": WorkItemStatus.PENDING,
                            "created_at": now,
                            "max_attempts": item.max_attempts or self._max_retries,
                        }
                    )
                )
            state.item_ids.update(batch_ids)

        logger.debug(f"Pushed {len(items)} items to job {job_id}")

    async def pop(self, job_id: str) -> WorkItem:
        """Claim the oldest pending item of the job."""
        state = await self._get_job(job_id)
        if state is None:
            raise QueueEmptyError(job_id)

        async with state.lock:
            self._check_open()
            if not state.pending:
                raise QueueEmptyError(job_id)

            item = state.pending.popleft()
            now = _now_utc()
            claimed = item.model_copy(
                update={
                    "status": WorkItemStatus.PROCESSING,
                    "started_at": now,
                    "attempt": item.attempt + 1,
                }
            )
            state.processing[claimed.id] = claimed
            if state.started_at is None:
                state.started_at = now

        logger.debug(
            f"Popped item {claimed.id} from job {job_id} "
            f"(attempt {claimed.attempt}/{claimed.max_attempts})"
        )
        return claimed

    # =========================================================================
    # Ack / Nack
    # =========================================================================

    async def ack(self, job_id: str, item_id: str, result: bytes = b"") -> None:
        """Mark a processing item as completed and store its result."""
        state = await self._require_job(job_id)

        async with state.lock:
            self._check_open()
            item = state.processing.pop(item_id, None)
            if item is None:
                raise ItemNotFoundError(job_id, item_id)

            state.completed[item_id] = item.model_copy(
                update={
                    "status": WorkItemStatus.COMPLETED,
                    "completed_at": _now_utc(),
                    "result": bytes(result or b""),
                }
            )

        logger.debug(f"Acked item {item_id} of job {job_id}")

    async def nack(
        self,
        job_id: str,
        item_id: str,
        error: BaseException | str | None = None,
    ) -> None:
        """Report a failed attempt: retry at the tail of pending, or fail."""
        state = await self._require_job(job_id)

        async with state.lock:
            self._check_open()
            if item_id not in state.processing:
                raise ItemNotFoundError(job_id, item_id)
            self._release_attempt(state, job_id, item_id, _error_text(error))

    def _release_attempt(self, state: JobState, job_id: str, item_id: str, message: str) -> None:
        """Move a processing item back to pending or on to failed. Caller holds state.lock."""
        item = state.processing.pop(item_id)

        if item.is_retriable:
            state.pending.append(
                item.model_copy(
                    update={
                        "status": WorkItemStatus.PENDING,
                        "started_at": None,
                        "error": message,
                    }
                )
            )
            logger.debug(
                f"Requeued item {item_id} of job {job_id} "
                f"(attempt {item.attempt}/{item.max_attempts}): {message or 'no error'}"
            )
        else:
            state.failed[item_id] = item.model_copy(
                update={
                    "status": WorkItemStatus.FAILED,
                    "completed_at": _now_utc(),
                    "error": message,
                }
            )
            logger.warning(
                f"Item {item_id} of job {job_id} failed after "
                f"{item.attempt} attempts: {message or 'no error'}"
            )

    # =========================================================================
    # Progress and Results
    # =========================================================================

    async def progress(self, job_id: str) -> JobProgress:
        """Snapshot of the job's item counts."""
        state = await self._require_job(job_id)

        async with state.lock:
            pending = len(state.pending)
            processing = len(state.processing)
            completed = len(state.completed)
            failed = len(state.failed)
            total = state.total

            completed_at = None
            if pending == 0 and processing == 0 and total > 0:
                finished = [
                    item.completed_at
                    for item in (*state.completed.values(), *state.failed.values())
                    if item.completed_at is not None
                ]
                completed_at = max(finished, default=None)

            return JobProgress(
                job_id=job_id,
                pending=pending,
                processing=processing,
                completed=completed,
                failed=failed,
                total=total,
                started_at=state.started_at,
                completed_at=completed_at,
            )

    async def get_completed_items(self, job_id: str) -> list[WorkItem]:
        """All completed items of the job."""
        state = await self._require_job(job_id)
        async with state.lock:
            return list(state.completed.values())

    async def get_failed_items(self, job_id: str) -> list[WorkItem]:
        """All failed items of the job."""
        state = await self._require_job(job_id)
        async with state.lock:
            return list(state.failed.values())

    # =========================================================================
    # Stalled Item Recovery
    # =========================================================================

    async def get_stalled_items(
        self,
        job_id: str,
        min_idle_seconds: float | None = None,
    ) -> list[WorkItem]:
        """Processing items claimed at least `min_idle_seconds` ago."""
        state = await self._require_job(job_id)
        async with state.lock:
            return self._stalled(state, min_idle_seconds)

    async def requeue_stalled(self, job_id: str, min_idle_seconds: float | None = None) -> int:
        """Nack every stalled item of the job with a visibility timeout error."""
        state = await self._require_job(job_id)

        async with state.lock:
            self._check_open()
            stalled = self._stalled(state, min_idle_seconds)
            for item in stalled:
                self._release_attempt(state, job_id, item.id, VISIBILITY_TIMEOUT_ERROR)

        if stalled:
            logger.warning(f"Reclaimed {len(stalled)} stalled items in job {job_id}")
        return len(stalled)

    def _stalled(self, state: JobState, min_idle_seconds: float | None) -> list[WorkItem]:
        if min_idle_seconds is None:
            min_idle_seconds = self._visibility_timeout_seconds
        deadline = _now_utc() - timedelta(seconds=min_idle_seconds)
        return [
            item
            for item in state.processing.values()
            if item.started_at is not None and item.started_at <= deadline
        ]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Permanently close the queue and release all job state."""
        async with self._jobs_lock:
            self._closed = True
            self._jobs.clear()
        logger.info("In-memory work queue closed")


def _error_text(error: BaseException | str | None) -> str:
    if error is None:
        return ""
    return str(error)


__all__ = ["InMemoryWorkQueue", "JobState", "VISIBILITY_TIMEOUT_ERROR"]
