"""
Arena Configuration.

Configuration models for the work queue, result storage, coordinator,
and workers, plus environment-driven settings that build them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueBackend(str, Enum):
    """Supported work queue backends."""

    MEMORY = "memory"  # In-process (single coordinator, tests)


class StorageBackend(str, Enum):
    """Supported result storage backends."""

    MEMORY = "memory"  # In-process (tests, local runs)


@dataclass(frozen=True)
class QueueConfig:
    """Configuration for the work queue."""

    backend: QueueBackend = QueueBackend.MEMORY

    # Retry budget applied to items pushed without max_attempts
    max_retries: int = 3

    # Processing deadline before an item is presumed lost
    visibility_timeout_seconds: int = 300  # 5 minutes

    # Items per push when a job is enqueued
    enqueue_batch_size: int = 100


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for result storage."""

    backend: StorageBackend = StorageBackend.MEMORY


@dataclass(frozen=True)
class CoordinatorConfig:
    """Configuration for the job coordinator."""

    # Monitoring
    progress_poll_interval_seconds: float = 5

    # Timeouts
    job_timeout_seconds: float = 3600  # 1 hour max job duration

    # Stalled item recovery (None disables the sweep)
    stalled_item_threshold_seconds: float | None = None


@dataclass(frozen=True)
class WorkerConfig:
    """Configuration for arena workers."""

    # Identity
    worker_id: str = "worker-0"

    # Polling
    poll_interval_seconds: float = 1.0
    max_empty_polls: int = 10  # Consecutive empty pops before checking completion

    # Shutdown
    shutdown_timeout_seconds: float = 60

    # Error messages recorded on nack are truncated to this length
    max_error_length: int = 500


@dataclass
class ArenaConfig:
    """Combined configuration for an arena deployment."""

    queue: QueueConfig = field(default_factory=QueueConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    coordinator: CoordinatorConfig = field(default_factory=CoordinatorConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)

    # Debug
    verbose: bool = False


class ArenaSettings(BaseSettings):
    """
    Environment-driven arena settings.

    Supports environment variables with ARENA_ prefix:
    - ARENA_QUEUE_BACKEND: "memory"
    - ARENA_MAX_RETRIES: default retry budget per work item
    - ARENA_VISIBILITY_TIMEOUT_SECONDS: processing deadline for popped items
    - ARENA_STORAGE_BACKEND: "memory"
    - ARENA_WORKER_ID: identifier of this worker process
    """

    model_config = SettingsConfigDict(
        env_prefix="ARENA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Queue
    queue_backend: QueueBackend = Field(
        default=QueueBackend.MEMORY,
        description="Work queue backend",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        description="Default maximum delivery attempts per work item",
    )
    visibility_timeout_seconds: int = Field(
        default=300,
        ge=1,
        description="Seconds a popped item may stay unacknowledged",
    )
    enqueue_batch_size: int = Field(
        default=100,
        ge=1,
        description="Work items pushed per queue call",
    )

    # Storage
    storage_backend: StorageBackend = Field(
        default=StorageBackend.MEMORY,
        description="Result storage backend",
    )

    # Coordinator
    progress_poll_interval_seconds: float = Field(
        default=5,
        gt=0,
        description="Seconds between job progress checks",
    )
    job_timeout_seconds: float = Field(
        default=3600,
        gt=0,
        description="Maximum seconds to wait for a job to complete",
    )
    stalled_item_threshold_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Requeue items processing longer than this (unset disables)",
    )

    # Worker
    worker_id: str = Field(
        default="worker-0",
        min_length=1,
        description="Unique identifier for this worker",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between pops when the queue is empty",
    )
    max_empty_polls: int = Field(
        default=10,
        ge=1,
        description="Consecutive empty pops before checking job completion",
    )

    verbose: bool = Field(default=False, description="Enable debug logging")

    def to_config(self) -> ArenaConfig:
        """Build the combined configuration from these settings."""
        return ArenaConfig(
            queue=QueueConfig(
                backend=self.queue_backend,
                max_retries=self.max_retries,
                visibility_timeout_seconds=self.visibility_timeout_seconds,
                enqueue_batch_size=self.enqueue_batch_size,
            ),
            storage=StorageConfig(backend=self.storage_backend),
            coordinator=CoordinatorConfig(
                progress_poll_interval_seconds=self.progress_poll_interval_seconds,
                job_timeout_seconds=self.job_timeout_seconds,
                stalled_item_threshold_seconds=self.stalled_item_threshold_seconds,
            ),
            worker=WorkerConfig(
                worker_id=self.worker_id,
                poll_interval_seconds=self.poll_interval_seconds,
                max_empty_polls=self.max_empty_polls,
            ),
            verbose=self.verbose,
        )


__all__ = [
    "QueueBackend",
    "StorageBackend",
    "QueueConfig",
    "StorageConfig",
    "CoordinatorConfig",
    "WorkerConfig",
    "ArenaConfig",
    "ArenaSettings",
]
