"""
Arena Job Coordinator.

Drives a job through its lifecycle: partition the request into work items,
enqueue them, monitor queue progress until every item is terminal, then
aggregate the results and persist them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from src.arena.aggregator import Aggregator, summary_fields
from src.arena.config import CoordinatorConfig, QueueConfig
from src.arena.exceptions import InvalidJobIDError, JobExistsError, JobNotFoundError
from src.arena.models import DEFAULT_NAMESPACE, JobProgress, Provider, Scenario, WorkItem
from src.arena.partitioner import batch, filter_scenarios, partition
from src.arena.queue.protocol import WorkQueue
from src.arena.results import JobResults
from src.arena.storage.protocol import ResultStorage

logger = logging.getLogger(__name__)


@dataclass
class JobRequest:
    """Declarative request to evaluate scenarios against providers."""

    job_id: str
    bundle_url: str
    scenarios: list[Scenario]
    providers: list[Provider]

    # Retry budget per work item (None = queue default)
    max_retries: int | None = None

    # Job-level settings copied into every work item's config
    base_config: dict[str, Any] = field(default_factory=dict)

    # Scenario selection (glob patterns)
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)

    # Attribution of stored results
    namespace: str = DEFAULT_NAMESPACE
    config_name: str = ""


@dataclass
class JobRunResult:
    """Outcome of waiting for a job."""

    job_id: str
    progress: JobProgress
    duration_seconds: float
    completed: bool


class ArenaCoordinator:
    """
    Coordinates a distributed arena job.

    Responsibilities:
    - Partition a JobRequest into work items and push them to the queue
    - Monitor job progress and detect completion or timeout
    - Reclaim stalled items when a stalled-item threshold is configured
    - Aggregate terminal items and store the consolidated JobResults

    The coordinator does NOT run workers; they consume the queue independently.
    """

    def __init__(
        self,
        queue: WorkQueue,
        storage: ResultStorage,
        config: CoordinatorConfig | None = None,
        queue_config: QueueConfig | None = None,
    ):
        """
        Initialize the coordinator.

        Args:
            queue: Work queue shared with workers
            storage: Destination for consolidated results
            config: Optional coordinator configuration
            queue_config: Optional queue settings (retry budget, push batch size)
        """
        self._queue = queue
        self._storage = storage
        self._config = config or CoordinatorConfig()
        self._queue_config = queue_config or QueueConfig()
        self._aggregator = Aggregator(queue)
        self._requests: dict[str, JobRequest] = {}

    async def start_job(self, request: JobRequest) -> int:
        """
        Partition the request and enqueue its work items.

        Partitioning is all-or-nothing: if it fails, nothing is enqueued.

        Returns:
            Number of work items enqueued

        Raises:
            InvalidJobIDError: If the job ID is empty
            JobExistsError: If the job was already started or is known to the queue
            EmptyInputError: If no scenario survives filtering or no provider is given
            PartitionError: If a work item cannot be built
        """
        if not request.job_id:
            raise InvalidJobIDError()
        if request.job_id in self._requests:
            raise JobExistsError(request.job_id)

        # Reserved before the first await so concurrent starts of one job conflict
        self._requests[request.job_id] = request
        try:
            items = await self._partition_new_job(request)
        except Exception:
            del self._requests[request.job_id]
            raise

        for i, chunk in enumerate(batch(items, self._queue_config.enqueue_batch_size), start=1):
            await self._queue.push(request.job_id, chunk)
            logger.debug(f"Enqueued {len(chunk)} work items (chunk {i})")

        logger.info(f"Enqueued {len(items)} work items for job {request.job_id}")
        return len(items)

    async def _partition_new_job(self, request: JobRequest) -> list[WorkItem]:
        """Filter and partition a request for a job the queue has never seen."""
        try:
            await self._queue.progress(request.job_id)
        except JobNotFoundError:
            pass
        else:
            raise JobExistsError(request.job_id)

        scenarios = filter_scenarios(request.scenarios, request.include, request.exclude)
        if len(scenarios) != len(request.scenarios):
            logger.info(
                f"Job {request.job_id}: {len(scenarios)}/{len(request.scenarios)} "
                f"scenarios selected by filters"
            )

        max_retries = request.max_retries or self._queue_config.max_retries
        return partition(
            request.job_id,
            request.bundle_url,
            scenarios,
            request.providers,
            max_retries,
            base_config=request.base_config,
        )

    async def get_progress(self, job_id: str) -> JobProgress:
        """Current progress of the job in the queue."""
        return await self._queue.progress(job_id)

    async def wait_for_completion(
        self,
        job_id: str,
        timeout_seconds: float | None = None,
        poll_interval: float | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> JobRunResult:
        """
        Poll until every item of the job is terminal or timeout.

        Args:
            job_id: Job to monitor
            timeout_seconds: Maximum time to wait (default from config)
            poll_interval: Seconds between progress checks (default from config)
            on_progress: Optional callback for progress updates (finished, total)

        Returns:
            JobRunResult with the last observed progress
        """
        timeout = timeout_seconds or self._config.job_timeout_seconds
        interval = poll_interval or self._config.progress_poll_interval_seconds
        stalled_threshold = self._config.stalled_item_threshold_seconds
        start_time = datetime.now(UTC)

        last_finished = -1
        while True:
            if stalled_threshold is not None:
                await self._queue.requeue_stalled(job_id, stalled_threshold)

            progress = await self.get_progress(job_id)
            finished = progress.completed + progress.failed

            if finished != last_finished and on_progress:
                on_progress(finished, progress.total)
            last_finished = finished

            elapsed = (datetime.now(UTC) - start_time).total_seconds()

            if progress.is_complete:
                logger.info(
                    f"Job {job_id} completed: {progress.completed} completed, "
                    f"{progress.failed} failed"
                )
                return JobRunResult(
                    job_id=job_id,
                    progress=progress,
                    duration_seconds=elapsed,
                    completed=True,
                )

            if elapsed >= timeout:
                logger.warning(
                    f"Job {job_id} timed out after {elapsed:.1f}s "
                    f"({finished}/{progress.total} finished)"
                )
                return JobRunResult(
                    job_id=job_id,
                    progress=progress,
                    duration_seconds=elapsed,
                    completed=False,
                )

            await asyncio.sleep(interval)

    async def collect_results(
        self,
        job_id: str,
        namespace: str | None = None,
        config_name: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> JobResults:
        """
        Aggregate the job's terminal items and store the consolidated results.

        Namespace and config name default to the values of the JobRequest
        this coordinator started, if any.

        Returns:
            The JobResults that were stored
        """
        request = self._requests.get(job_id)
        if namespace is None:
            namespace = request.namespace if request else DEFAULT_NAMESPACE
        if config_name is None:
            config_name = request.config_name if request else ""

        progress = await self._queue.progress(job_id)
        aggregated, results = await self._aggregator.collect(job_id)

        job_metadata = dict(metadata or {})
        job_metadata.update(summary_fields(aggregated))

        job_results = JobResults(
            job_id=job_id,
            namespace=namespace,
            config_name=config_name,
            started_at=progress.started_at,
            completed_at=progress.completed_at,
            summary=aggregated,
            results=results,
            metadata=job_metadata,
        )
        await self._storage.store(job_id, job_results)
        return job_results


__all__ = ["ArenaCoordinator", "JobRequest", "JobRunResult"]
