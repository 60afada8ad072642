"""
Arena Models.

Data models for scenarios, providers, work items, and job progress.

Work items are frozen: every lifecycle transition in the queue produces a
new instance, so a value handed to a caller can never alias queue state.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_NAMESPACE = "default"


def _now_utc() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _generate_id() -> str:
    """Generate a unique identifier."""
    return str(uuid4())


class Scenario(BaseModel):
    """A named conversational test case sourced from a bundle."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable scenario identifier")
    name: str = Field(default="", description="Display name")
    path: str = Field(default="", description="Path of the scenario file within the bundle")
    description: str | None = None
    tags: tuple[str, ...] = ()

    @property
    def filename(self) -> str:
        """Bare filename of the scenario path."""
        return self.path.rsplit("/", 1)[-1]


class Provider(BaseModel):
    """Reference to a backend (model/endpoint) configuration."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Identity used for result attribution")
    name: str = ""
    namespace: str = DEFAULT_NAMESPACE

    @classmethod
    def from_ref(cls, ref: str) -> Provider:
        """
        Build a provider from a "namespace/name" reference.

        A bare name is placed in the default namespace.
        """
        namespace, sep, name = ref.partition("/")
        if not sep:
            namespace, name = DEFAULT_NAMESPACE, ref
        if not namespace or not name:
            raise ValueError(f"Invalid provider reference: {ref!r}")
        return cls(id=f"{namespace}/{name}", name=name, namespace=namespace)


class WorkItemStatus(str, Enum):
    """Lifecycle state of a work item."""

    PENDING = "pending"  # Waiting in the job's pending sequence
    PROCESSING = "processing"  # Popped by a worker, awaiting ack/nack
    COMPLETED = "completed"  # Acked (terminal)
    FAILED = "failed"  # Retry budget exhausted (terminal)


class WorkItem(BaseModel):
    """
    One scenario x provider evaluation unit.

    Carries everything a worker needs to execute it. The config payload is
    opaque serialized bytes (JSON) so the queue never depends on its shape.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    id: str = Field(default_factory=_generate_id, min_length=1)
    job_id: str = ""
    scenario_id: str = ""
    provider_id: str = ""

    # Payload
    bundle_url: str = ""
    config: bytes = b""

    # Lifecycle
    status: WorkItemStatus = WorkItemStatus.PENDING
    attempt: int = Field(default=0, ge=0, description="Number of times popped")
    max_attempts: int = Field(
        default=0,
        ge=0,
        description="Retry budget (0 = use the queue default)",
    )
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: bytes = b""
    error: str = ""

    @property
    def is_retriable(self) -> bool:
        """Whether a nack would return this item to pending."""
        return self.attempt < self.max_attempts

    @property
    def is_terminal(self) -> bool:
        """Whether the item has reached completed or failed."""
        return self.status in (WorkItemStatus.COMPLETED, WorkItemStatus.FAILED)

    def decode_config(self) -> dict[str, Any]:
        """Deserialize the opaque config payload."""
        if not self.config:
            return {}
        return json.loads(self.config)


class JobProgress(BaseModel):
    """Read-only snapshot of a job's progress in the queue."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    pending: int = Field(default=0, ge=0)
    processing: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    # Timing
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        """Whether no item is pending or processing."""
        return self.pending == 0 and self.processing == 0

    @property
    def progress_pct(self) -> float:
        """Percentage of items in a terminal state."""
        if self.total == 0:
            return 0.0
        return ((self.completed + self.failed) / self.total) * 100


class WorkerStatus(BaseModel):
    """Status of a worker."""

    model_config = ConfigDict(frozen=True)

    worker_id: str
    status: str = Field(default="idle")  # running, idle, stopped
    items_processed: int = Field(default=0, ge=0)
    items_failed: int = Field(default=0, ge=0)
    last_heartbeat: datetime = Field(default_factory=_now_utc)
    current_item_id: str | None = None
    current_job_id: str | None = None

    @property
    def is_healthy(self) -> bool:
        """Whether worker is considered healthy."""
        return self.status in ("running", "idle")


__all__ = [
    "DEFAULT_NAMESPACE",
    "Scenario",
    "Provider",
    "WorkItemStatus",
    "WorkItem",
    "JobProgress",
    "WorkerStatus",
]
