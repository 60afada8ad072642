"""
Work Queue Protocol.

Defines the interface every work queue backend must satisfy. The in-memory
implementation is the reference for these semantics; a networked backend
must reproduce them and additionally enforce the visibility timeout.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from src.arena.models import JobProgress, WorkItem


@runtime_checkable
class WorkQueue(Protocol):
    """
    Per-job, multi-consumer work queue.

    Implementations must provide:
    - At-least-once delivery of every pushed item
    - Strict FIFO pop order within a job (retries rejoin at the tail)
    - Bounded retry: an item nacked with no attempts left becomes failed
    - Isolation: returned items never alias internal state

    Item lifecycle:
        pending --pop--> processing --ack--> completed
                         processing --nack (attempts left)--> pending
                         processing --nack (exhausted)--> failed
    """

    @abstractmethod
    async def push(self, job_id: str, items: Sequence[WorkItem]) -> None:
        """
        Append items to the job's pending sequence in argument order.

        Sets job_id, status=pending and created_at on each item and fills
        max_attempts from the queue default when it is unset.

        Raises:
            QueueClosedError: If the queue is closed
            DuplicateItemError: If an item ID is already known to the job
        """
        ...

    @abstractmethod
    async def pop(self, job_id: str) -> WorkItem:
        """
        Claim the oldest pending item of the job.

        Raises:
            QueueEmptyError: If the job is unknown or has nothing pending.
                Expected condition: callers back off and poll again.
            QueueClosedError: If the queue is closed
        """
        ...

    @abstractmethod
    async def ack(self, job_id: str, item_id: str, result: bytes = b"") -> None:
        """
        Mark a processing item as completed and store its result.

        Raises:
            JobNotFoundError: If the job is unknown
            ItemNotFoundError: If the item is not currently processing
            QueueClosedError: If the queue is closed
        """
        ...

    @abstractmethod
    async def nack(
        self,
        job_id: str,
        item_id: str,
        error: BaseException | str | None = None,
    ) -> None:
        """
        Report a failed processing attempt.

        The item returns to the tail of pending if it has attempts left,
        otherwise it moves to failed. The error text is recorded on the item.

        Raises:
            JobNotFoundError: If the job is unknown
            ItemNotFoundError: If the item is not currently processing
            QueueClosedError: If the queue is closed
        """
        ...

    @abstractmethod
    async def progress(self, job_id: str) -> JobProgress:
        """
        Snapshot of the job's item counts.

        Raises:
            JobNotFoundError: If the job has never been pushed to
            QueueClosedError: If the queue is closed
        """
        ...

    @abstractmethod
    async def get_completed_items(self, job_id: str) -> list[WorkItem]:
        """All completed items of the job."""
        ...

    @abstractmethod
    async def get_failed_items(self, job_id: str) -> list[WorkItem]:
        """All failed items of the job."""
        ...

    # =========================================================================
    # Stalled Item Recovery
    # =========================================================================

    @abstractmethod
    async def get_stalled_items(
        self,
        job_id: str,
        min_idle_seconds: float,
    ) -> list[WorkItem]:
        """Processing items claimed at least `min_idle_seconds` ago."""
        ...

    @abstractmethod
    async def requeue_stalled(self, job_id: str, min_idle_seconds: float) -> int:
        """
        Nack every stalled item of the job (visibility timeout sweep).

        The retry budget applies: a stalled item on its last attempt fails.

        Returns:
            Number of items reclaimed
        """
        ...

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    async def close(self) -> None:
        """Permanently close the queue and release all job state."""
        ...


__all__ = ["WorkQueue"]
