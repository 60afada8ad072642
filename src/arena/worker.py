"""
Arena Worker.

The ArenaWorker pulls work items for one job from the queue, runs them
through an executor, and reports each outcome back:
- Ack with the executor's result payload on success
- Nack with the (truncated) error text on failure, so the queue decides
  between retry and terminal failure
- Exits once the queue stays empty and the job is complete
- Graceful shutdown on SIGTERM/SIGINT
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel

from src.arena.config import WorkerConfig
from src.arena.exceptions import ItemNotFoundError, QueueEmptyError
from src.arena.models import WorkerStatus, WorkItem, _now_utc
from src.arena.queue.protocol import WorkQueue

logger = logging.getLogger(__name__)


# Executes one work item and returns its result payload
Executor = Callable[[WorkItem], Awaitable[Any]]


class ArenaWorker:
    """
    Work item consumer for a single job.

    Example:
        async def execute(item: WorkItem) -> dict:
            return {"status": "pass", "durationMs": 120}

        worker = ArenaWorker("worker-0", queue, "job-001", execute)
        await worker.run()
    """

    def __init__(
        self,
        worker_id: str,
        queue: WorkQueue,
        job_id: str,
        executor: Executor,
        config: WorkerConfig | None = None,
        handle_signals: bool = True,
    ):
        """
        Initialize the worker.

        Args:
            worker_id: Unique identifier for this worker
            queue: Work queue to pull from
            job_id: Job to process
            executor: Coroutine function producing a result payload for an item
                (bytes, str, dict, or pydantic model)
            config: Worker configuration
            handle_signals: Install SIGTERM/SIGINT handlers while running
        """
        self.worker_id = worker_id
        self.queue = queue
        self.job_id = job_id
        self.executor = executor
        self.config = config or WorkerConfig(worker_id=worker_id)
        self.handle_signals = handle_signals

        # State
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._current_item: WorkItem | None = None

        # Stats
        self._items_processed = 0
        self._items_failed = 0

    @property
    def status(self) -> WorkerStatus:
        """Get current worker status."""
        if self._running:
            state = "running" if self._current_item else "idle"
        else:
            state = "stopped"
        return WorkerStatus(
            worker_id=self.worker_id,
            status=state,
            items_processed=self._items_processed,
            items_failed=self._items_failed,
            last_heartbeat=_now_utc(),
            current_item_id=self._current_item.id if self._current_item else None,
            current_job_id=self.job_id if self._running else None,
        )

    async def run(self) -> None:
        """
        Main worker loop.

        Processes items until shutdown is requested or the job is complete.
        Queue errors other than an empty queue propagate.
        """
        self._running = True
        installed = self._install_signal_handlers() if self.handle_signals else []

        logger.info(f"Worker {self.worker_id} starting for job {self.job_id}")

        try:
            await self._process_loop()
        except asyncio.CancelledError:
            logger.info(f"Worker {self.worker_id} cancelled")
            raise
        except Exception as e:
            logger.error(f"Worker {self.worker_id} error: {e}", exc_info=True)
            raise
        finally:
            self._running = False
            loop = asyncio.get_running_loop()
            for sig in installed:
                loop.remove_signal_handler(sig)

            logger.info(
                f"Worker {self.worker_id} stopped. "
                f"Processed: {self._items_processed}, Failed: {self._items_failed}"
            )

    async def _process_loop(self) -> None:
        """Pop, execute and report until the job is done."""
        empty_polls = 0

        while not self._shutdown_event.is_set():
            try:
                item = await self.queue.pop(self.job_id)
            except QueueEmptyError:
                empty_polls += 1
                if empty_polls >= self.config.max_empty_polls:
                    progress = await self.queue.progress(self.job_id)
                    if progress.is_complete:
                        logger.info(
                            f"Job {self.job_id} complete: "
                            f"{progress.completed + progress.failed}/{progress.total} items processed"
                        )
                        return
                    # Items are still processing elsewhere and may be retried
                    empty_polls = 0

                await self._idle(self.config.poll_interval_seconds)
                continue

            empty_polls = 0
            await self._process_item(item)

        logger.info(f"Worker {self.worker_id} shutdown requested, leaving loop")

    async def _process_item(self, item: WorkItem) -> None:
        """Execute one item and ack or nack it."""
        self._current_item = item
        try:
            try:
                payload = await self.executor(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._items_failed += 1
                logger.warning(
                    f"Item {item.id} failed (attempt {item.attempt}/{item.max_attempts}): {e}"
                )
                await self._report(
                    self.queue.nack(
                        self.job_id,
                        item.id,
                        str(e)[: self.config.max_error_length],
                    ),
                    "nack",
                    item,
                )
                return

            acked = await self._report(
                self.queue.ack(self.job_id, item.id, encode_result(payload)),
                "ack",
                item,
            )
            if acked:
                self._items_processed += 1
            logger.debug(f"Processed item {item.id} (scenario {item.scenario_id})")
        finally:
            self._current_item = None

    async def _report(self, call: Awaitable[None], action: str, item: WorkItem) -> bool:
        """Await an ack/nack; an item that is no longer processing is skipped."""
        try:
            await call
        except ItemNotFoundError as e:
            logger.warning(f"Failed to {action} item {item.id}: {e}")
            return False
        return True

    async def _idle(self, seconds: float) -> None:
        """Sleep between polls, waking early on shutdown."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)

    def _install_signal_handlers(self) -> list[signal.Signals]:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown_signal)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Windows, or not running in the main thread
                pass
        return installed

    def _handle_shutdown_signal(self) -> None:
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        logger.info(f"Worker {self.worker_id} received shutdown signal")
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Request graceful shutdown and wait for the current item to finish."""
        logger.info(f"Worker {self.worker_id} shutdown requested")
        self._shutdown_event.set()

        timeout = self.config.shutdown_timeout_seconds
        start = _now_utc()

        while self._current_item is not None:
            elapsed = (_now_utc() - start).total_seconds()
            if elapsed > timeout:
                logger.warning(
                    f"Worker {self.worker_id} shutdown timeout, "
                    f"item {self._current_item.id} will be reclaimed by the queue"
                )
                break
            await asyncio.sleep(0.1)


def encode_result(payload: Any) -> bytes:
    """Serialize an executor's return value into an ack payload."""
    if payload is None:
        return b""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True).encode("utf-8")
    return json.dumps(payload).encode("utf-8")


__all__ = ["ArenaWorker", "Executor", "encode_result"]
