"""
Arena - distributed evaluation core.

Splits an evaluation request (scenarios x providers) into independently
retryable work items, distributes them through a per-job work queue, and
consolidates worker results into stored job results.

Components:
- partitioner: scenario enumeration, filtering, and work item expansion
- queue: WorkQueue protocol and in-memory implementation
- storage: ResultStorage protocol and in-memory implementation
- aggregator: per-item result parsing and job-level statistics
- coordinator / worker: job control loop and work item consumer
"""

from src.arena.aggregator import (
    Aggregator,
    parse_execution_result,
    parse_junit_xml,
    summary_fields,
)
from src.arena.config import (
    ArenaConfig,
    ArenaSettings,
    CoordinatorConfig,
    QueueBackend,
    QueueConfig,
    StorageBackend,
    StorageConfig,
    WorkerConfig,
)
from src.arena.coordinator import ArenaCoordinator, JobRequest, JobRunResult
from src.arena.exceptions import (
    ArenaError,
    ConfigurationError,
    DuplicateItemError,
    EmptyInputError,
    InvalidJobIDError,
    ItemNotFoundError,
    JobExistsError,
    JobNotFoundError,
    PartitionError,
    QueueClosedError,
    QueueEmptyError,
    QueueError,
    ResultNotFoundError,
    ScenarioConfigError,
    StorageClosedError,
    StorageError,
)
from src.arena.models import (
    JobProgress,
    Provider,
    Scenario,
    WorkerStatus,
    WorkItem,
    WorkItemStatus,
)
from src.arena.partitioner import (
    batch,
    estimate_work_items,
    filter_scenarios,
    list_scenarios_from_config,
    partition,
    scenario_id_from_filename,
)
from src.arena.queue import InMemoryWorkQueue, WorkQueue, create_queue
from src.arena.results import (
    AggregatedResult,
    AssertionResult,
    ErrorGroup,
    ExecutionResult,
    GroupStats,
    JobResults,
    ResultInfo,
    ResultStatus,
)
from src.arena.storage import InMemoryResultStorage, ResultStorage, create_storage
from src.arena.worker import ArenaWorker

__all__ = [
    # Models
    "Scenario",
    "Provider",
    "WorkItem",
    "WorkItemStatus",
    "JobProgress",
    "WorkerStatus",
    # Results
    "ResultStatus",
    "AssertionResult",
    "ExecutionResult",
    "GroupStats",
    "ErrorGroup",
    "AggregatedResult",
    "JobResults",
    "ResultInfo",
    # Config
    "QueueBackend",
    "StorageBackend",
    "QueueConfig",
    "StorageConfig",
    "CoordinatorConfig",
    "WorkerConfig",
    "ArenaConfig",
    "ArenaSettings",
    # Partitioning
    "partition",
    "batch",
    "estimate_work_items",
    "filter_scenarios",
    "list_scenarios_from_config",
    "scenario_id_from_filename",
    # Queue
    "WorkQueue",
    "InMemoryWorkQueue",
    "create_queue",
    # Storage
    "ResultStorage",
    "InMemoryResultStorage",
    "create_storage",
    # Aggregation and control
    "Aggregator",
    "parse_execution_result",
    "parse_junit_xml",
    "summary_fields",
    "ArenaCoordinator",
    "JobRequest",
    "JobRunResult",
    "ArenaWorker",
    # Exceptions
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
