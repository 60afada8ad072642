"""
Arena Exception Hierarchy

Provides structured exception types for job partitioning, the work queue,
and result storage. All arena-specific exceptions inherit from ArenaError.

Usage:
    from src.arena.exceptions import QueueEmptyError, StorageError

    try:
        item = await queue.pop(job_id)
    except QueueEmptyError:
        await asyncio.sleep(poll_interval)
"""

from __future__ import annotations


class ArenaError(Exception):
    """
    Base exception for all Arena errors.

    Attributes:
        message: Human-readable error description
        code: Optional machine-readable error code for programmatic handling
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ArenaError):
    """Base class for caller-fixable input and configuration errors."""

    pass


class EmptyInputError(ConfigurationError):
    """A required input list was empty."""

    def __init__(self, what: str) -> None:
        super().__init__(f"Empty input: at least one {what} is required", code="EMPTY_INPUT")
        self.what = what


class InvalidJobIDError(ConfigurationError):
    """Job identifier is empty."""

    def __init__(self) -> None:
        super().__init__("Invalid job id: job id must not be empty", code="INVALID_JOB_ID")


class JobExistsError(ConfigurationError):
    """A job with this identifier has already been started."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' already exists", code="JOB_EXISTS")
        self.job_id = job_id


class ScenarioConfigError(ConfigurationError):
    """Top-level arena config file could not be read or parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Failed to load arena config '{path}': {reason}",
            code="SCENARIO_CONFIG",
        )
        self.path = path
        self.reason = reason


# =============================================================================
# Partition Errors
# =============================================================================


class PartitionError(ArenaError):
    """Partitioning a job into work items failed. No items were produced."""

    def __init__(
        self,
        job_id: str,
        reason: str,
        scenario_id: str | None = None,
        provider_id: str | None = None,
    ) -> None:
        message = f"Failed to partition job '{job_id}'"
        if scenario_id is not None and provider_id is not None:
            message += f" (scenario '{scenario_id}', provider '{provider_id}')"
        super().__init__(f"{message}: {reason}", code="PARTITION_FAILED")
        self.job_id = job_id
        self.scenario_id = scenario_id
        self.provider_id = provider_id


# =============================================================================
# Queue Errors
# =============================================================================


class QueueError(ArenaError):
    """Base class for work queue errors."""

    pass


class QueueClosedError(QueueError):
    """Operation attempted on a closed queue."""

    def __init__(self) -> None:
        super().__init__("Queue is closed", code="QUEUE_CLOSED")


class QueueEmptyError(QueueError):
    """
    No pending work item is available for the job.

    This is an expected condition for pollers: back off and pop again.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Queue is empty for job '{job_id}'", code="QUEUE_EMPTY")
        self.job_id = job_id


class JobNotFoundError(QueueError):
    """The job has never been pushed to this queue."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' not found", code="JOB_NOT_FOUND")
        self.job_id = job_id


class ItemNotFoundError(QueueError):
    """The work item is not currently being processed."""

    def __init__(self, job_id: str, item_id: str) -> None:
        super().__init__(
            f"Work item '{item_id}' not found in processing for job '{job_id}'",
            code="ITEM_NOT_FOUND",
        )
        self.job_id = job_id
        self.item_id = item_id


class DuplicateItemError(QueueError):
    """A pushed work item ID is already known to the job."""

    def __init__(self, job_id: str, item_id: str) -> None:
        super().__init__(
            f"Work item '{item_id}' already exists in job '{job_id}'",
            code="DUPLICATE_ITEM",
        )
        self.job_id = job_id
        self.item_id = item_id


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(ArenaError):
    """Base class for result storage errors."""

    pass


class StorageClosedError(StorageError):
    """Operation attempted on closed storage."""

    def __init__(self) -> None:
        super().__init__("Storage is closed", code="STORAGE_CLOSED")


class ResultNotFoundError(StorageError):
    """No results are stored for the job."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Result not found for job '{job_id}'", code="RESULT_NOT_FOUND")
        self.job_id = job_id


__all__ = [
    "ArenaError",
    "ConfigurationError",
    "EmptyInputError",
    "InvalidJobIDError",
    "JobExistsError",
    "ScenarioConfigError",
    "PartitionError",
    "QueueError",
    "QueueClosedError",
    "QueueEmptyError",
    "JobNotFoundError",
    "ItemNotFoundError",
    "DuplicateItemError",
    "StorageError",
    "StorageClosedError",
    "ResultNotFoundError",
]
