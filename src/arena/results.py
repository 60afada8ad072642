"""
Arena Result Models.

Per-item execution results, job-level aggregates, and the consolidated
JobResults record persisted by result storage.

JobResults and its nested models are mutable; storage backends isolate
callers by deep-copying on every write and read.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.arena.models import DEFAULT_NAMESPACE


class ResultStatus(str, Enum):
    """Outcome of executing one work item."""

    PASS = "pass"
    FAIL = "fail"
    UNKNOWN = "unknown"


class AssertionResult(BaseModel):
    """Outcome of a single assertion within a scenario run."""

    name: str
    passed: bool
    message: str = ""


class ExecutionResult(BaseModel):
    """Parsed result of one work item."""

    work_item_id: str
    scenario_id: str = ""
    provider_id: str = ""
    status: ResultStatus = ResultStatus.UNKNOWN
    error: str = ""
    duration_seconds: float = Field(default=0.0, ge=0)
    metrics: dict[str, float] = Field(default_factory=dict)
    assertions: list[AssertionResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.status == ResultStatus.PASS


class GroupStats(BaseModel):
    """Pass/fail counts for one scenario or provider."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    pass_rate: float = 0.0


class ErrorGroup(BaseModel):
    """Failures sharing the same error message."""

    message: str
    count: int = 0
    work_item_ids: list[str] = Field(default_factory=list)


class AggregatedResult(BaseModel):
    """Job-level summary computed from completed and failed work items."""

    total_items: int = 0
    passed_items: int = 0
    failed_items: int = 0
    pass_rate: float = 0.0  # Percent

    # Timing
    total_duration_seconds: float = 0.0
    avg_duration_seconds: float = 0.0

    # Usage (from "tokens" and "cost" metrics)
    total_tokens: int = 0
    total_cost: float = 0.0

    by_scenario: dict[str, GroupStats] = Field(default_factory=dict)
    by_provider: dict[str, GroupStats] = Field(default_factory=dict)
    errors: list[ErrorGroup] = Field(default_factory=list)


class JobResults(BaseModel):
    """Consolidated result set of a job, as persisted by result storage."""

    job_id: str = ""
    namespace: str = DEFAULT_NAMESPACE
    config_name: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    summary: AggregatedResult | None = None
    results: list[ExecutionResult] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)


class ResultInfo(BaseModel):
    """Listing entry for a stored result set."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    namespace: str = DEFAULT_NAMESPACE
    completed_at: datetime | None = None
    size_bytes: int = Field(default=0, ge=0)
    total_items: int = 0
    passed_items: int = 0
    failed_items: int = 0


__all__ = [
    "ResultStatus",
    "AssertionResult",
    "ExecutionResult",
    "GroupStats",
    "ErrorGroup",
    "AggregatedResult",
    "JobResults",
    "ResultInfo",
]
