"""
Tests for WorkQueue protocol and InMemoryWorkQueue implementation.

These tests verify the item lifecycle (pending -> processing -> completed
or failed), retry bookkeeping, progress accounting, and error mapping,
using InMemoryWorkQueue as the reference implementation.
"""

import asyncio

import pytest
from pydantic import ValidationError

from src.arena.config import QueueBackend, QueueConfig
from src.arena.exceptions import (
    DuplicateItemError,
    ItemNotFoundError,
    JobNotFoundError,
    QueueClosedError,
    QueueEmptyError,
    QueueError,
)
from src.arena.models import WorkItem, WorkItemStatus
from src.arena.queue import InMemoryWorkQueue, WorkQueue, create_queue
from src.arena.queue.memory import VISIBILITY_TIMEOUT_ERROR

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def queue() -> InMemoryWorkQueue:
    """Create a fresh in-memory queue for each test."""
    return InMemoryWorkQueue(max_retries=3)


def make_items(count: int, max_attempts: int = 0) -> list[WorkItem]:
    return [
        WorkItem(
            id=f"item-{i}",
            scenario_id=f"scenario-{i}",
            provider_id="default/openai",
            max_attempts=max_attempts,
        )
        for i in range(count)
    ]


async def assert_accounting(queue: InMemoryWorkQueue, job_id: str) -> None:
    progress = await queue.progress(job_id)
    assert (
        progress.pending + progress.processing + progress.completed + progress.failed
        == progress.total
    )


# =============================================================================
# Protocol Compliance Tests
# =============================================================================


class TestWorkQueueProtocol:
    """Tests that InMemoryWorkQueue satisfies the WorkQueue protocol."""

    def test_implements_protocol(self, queue: InMemoryWorkQueue):
        """InMemoryWorkQueue should implement WorkQueue protocol."""
        assert isinstance(queue, WorkQueue)

    @pytest.mark.asyncio
    async def test_factory_creates_memory_queue(self):
        """create_queue should honour the configured retry budget."""
        queue = await create_queue(QueueConfig(backend=QueueBackend.MEMORY, max_retries=7))

        assert isinstance(queue, InMemoryWorkQueue)
        assert queue.max_retries == 7

    @pytest.mark.asyncio
    async def test_factory_rejects_unknown_backend(self):
        """Unknown backends should raise QueueError."""
        with pytest.raises(QueueError, match="Unknown queue backend"):
            await create_queue(QueueConfig(backend="carrier-pigeon"))


# =============================================================================
# Push Tests
# =============================================================================


class TestPush:
    """Tests for push."""

    @pytest.mark.asyncio
    async def test_push_creates_job(self, queue: InMemoryWorkQueue):
        """Push should create job state and count items as pending."""
        await queue.push("j1", make_items(3))

        progress = await queue.progress("j1")
        assert progress.pending == 3
        assert progress.total == 3
        assert progress.started_at is None

    @pytest.mark.asyncio
    async def test_push_sets_lifecycle_fields(self, queue: InMemoryWorkQueue):
        """Push should stamp job_id, status, created_at and back-fill max_attempts."""
        await queue.push("j1", [WorkItem(id="a", status=WorkItemStatus.FAILED)])

        item = await queue.pop("j1")
        assert item.job_id == "j1"
        assert item.created_at is not None
        assert item.max_attempts == 3

    @pytest.mark.asyncio
    async def test_push_keeps_explicit_max_attempts(self, queue: InMemoryWorkQueue):
        """Items that specify max_attempts keep it."""
        await queue.push("j1", make_items(1, max_attempts=5))

        item = await queue.pop("j1")
        assert item.max_attempts == 5

    @pytest.mark.asyncio
    async def test_push_empty_list_is_noop(self, queue: InMemoryWorkQueue):
        """Pushing no items should not create the job."""
        await queue.push("j1", [])

        with pytest.raises(JobNotFoundError):
            await queue.progress("j1")

    @pytest.mark.asyncio
    async def test_push_appends_to_existing_job(self, queue: InMemoryWorkQueue):
        """Later pushes append to the same job."""
        await queue.push("j1", make_items(2))
        await queue.push("j1", [WorkItem(id="late")])

        ids = [(await queue.pop("j1")).id for _ in range(3)]
        assert ids == ["item-0", "item-1", "late"]

    @pytest.mark.asyncio
    async def test_push_rejects_known_item_id(self, queue: InMemoryWorkQueue):
        """An item ID already in the job should be rejected."""
        await queue.push("j1", make_items(1))

        with pytest.raises(DuplicateItemError) as exc_info:
            await queue.push("j1", make_items(1))

        assert exc_info.value.item_id == "item-0"
        assert (await queue.progress("j1")).total == 1

    @pytest.mark.asyncio
    async def test_push_rejects_duplicate_in_batch_atomically(self, queue: InMemoryWorkQueue):
        """A batch with a repeated ID should enqueue nothing."""
        await queue.push("j1", [WorkItem(id="first")])

        with pytest.raises(DuplicateItemError):
            await queue.push("j1", [WorkItem(id="x"), WorkItem(id="y"), WorkItem(id="x")])

        assert (await queue.progress("j1")).total == 1

    @pytest.mark.asyncio
    async def test_rejected_push_leaves_no_job_behind(self, queue: InMemoryWorkQueue):
        """A push refused for duplicate IDs must not create the job."""
        with pytest.raises(DuplicateItemError):
            await queue.push("ghost", [WorkItem(id="x"), WorkItem(id="x")])

        with pytest.raises(JobNotFoundError):
            await queue.progress("ghost")

    @pytest.mark.asyncio
    async def test_same_item_id_in_different_jobs(self, queue: InMemoryWorkQueue):
        """Item IDs only need to be unique within a job."""
        await queue.push("j1", make_items(1))
        await queue.push("j2", make_items(1))

        assert (await queue.progress("j1")).total == 1
        assert (await queue.progress("j2")).total == 1

    @pytest.mark.asyncio
    async def test_push_does_not_alias_caller_items(self, queue: InMemoryWorkQueue):
        """The queue stores its own instances of pushed items."""
        items = make_items(1)
        await queue.push("j1", items)

        popped = await queue.pop("j1")
        assert popped is not items[0]
        assert items[0].status == WorkItemStatus.PENDING
        assert items[0].attempt == 0


# =============================================================================
# Pop Tests
# =============================================================================


class TestPop:
    """Tests for pop."""

    @pytest.mark.asyncio
    async def test_pop_is_fifo(self, queue: InMemoryWorkQueue):
        """Items should be popped in push order."""
        await queue.push("j1", make_items(5))

        ids = [(await queue.pop("j1")).id for _ in range(5)]
        assert ids == [f"item-{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_pop_claims_item(self, queue: InMemoryWorkQueue):
        """Pop should mark the item processing and count the attempt."""
        await queue.push("j1", make_items(1))

        item = await queue.pop("j1")
        assert item.status == WorkItemStatus.PROCESSING
        assert item.attempt == 1
        assert item.started_at is not None

        progress = await queue.progress("j1")
        assert progress.pending == 0
        assert progress.processing == 1

    @pytest.mark.asyncio
    async def test_first_pop_records_job_start(self, queue: InMemoryWorkQueue):
        """Job started_at is set by the first pop and not moved by later ones."""
        await queue.push("j1", make_items(2))

        first = await queue.pop("j1")
        started_at = (await queue.progress("j1")).started_at
        await queue.pop("j1")

        assert started_at == first.started_at
        assert (await queue.progress("j1")).started_at == started_at

    @pytest.mark.asyncio
    async def test_pop_unknown_job_is_empty(self, queue: InMemoryWorkQueue):
        """Popping a job that was never pushed is an empty queue, not an unknown job."""
        with pytest.raises(QueueEmptyError) as exc_info:
            await queue.pop("missing")

        assert exc_info.value.job_id == "missing"

    @pytest.mark.asyncio
    async def test_pop_drained_job_is_empty(self, queue: InMemoryWorkQueue):
        """Popping after every item is claimed raises QueueEmptyError."""
        await queue.push("j1", make_items(1))
        await queue.pop("j1")

        with pytest.raises(QueueEmptyError):
            await queue.pop("j1")

    @pytest.mark.asyncio
    async def test_jobs_are_isolated(self, queue: InMemoryWorkQueue):
        """Popping one job must not touch another."""
        await queue.push("j1", make_items(2))
        await queue.push("j2", make_items(3))

        await queue.pop("j1")

        assert (await queue.progress("j1")).pending == 1
        assert (await queue.progress("j2")).pending == 3

    @pytest.mark.asyncio
    async def test_concurrent_pops_claim_each_item_once(self, queue: InMemoryWorkQueue):
        """Concurrent consumers never receive the same item."""
        await queue.push("j1", make_items(20))

        async def consume() -> list[str]:
            claimed = []
            while True:
                try:
                    item = await queue.pop("j1")
                except QueueEmptyError:
                    return claimed
                claimed.append(item.id)
                await asyncio.sleep(0)

        results = await asyncio.gather(*(consume() for _ in range(4)))
        claimed = [item_id for batch in results for item_id in batch]

        assert sorted(claimed) == sorted(f"item-{i}" for i in range(20))
        assert (await queue.progress("j1")).processing == 20


# =============================================================================
# Ack Tests
# =============================================================================


class TestAck:
    """Tests for ack."""

    @pytest.mark.asyncio
    async def test_ack_completes_item(self, queue: InMemoryWorkQueue):
        """Ack should move the item to completed and store the result."""
        await queue.push("j1", make_items(1))
        item = await queue.pop("j1")

        await queue.ack("j1", item.id, b'{"status": "pass"}')

        completed = await queue.get_completed_items("j1")
        assert len(completed) == 1
        assert completed[0].status == WorkItemStatus.COMPLETED
        assert completed[0].result == b'{"status": "pass"}'
        assert completed[0].completed_at is not None

    @pytest.mark.asyncio
    async def test_ack_twice_fails(self, queue: InMemoryWorkQueue):
        """A completed item is no longer processing."""
        await queue.push("j1", make_items(1))
        item = await queue.pop("j1")
        await queue.ack("j1", item.id)

        with pytest.raises(ItemNotFoundError):
            await queue.ack("j1", item.id)

    @pytest.mark.asyncio
    async def test_ack_pending_item_fails(self, queue: InMemoryWorkQueue):
        """Only processing items can be acked."""
        await queue.push("j1", make_items(1))

        with pytest.raises(ItemNotFoundError) as exc_info:
            await queue.ack("j1", "item-0")

        assert exc_info.value.job_id == "j1"
        assert exc_info.value.item_id == "item-0"

    @pytest.mark.asyncio
    async def test_ack_unknown_job_fails(self, queue: InMemoryWorkQueue):
        """Ack on a job that was never pushed raises JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            await queue.ack("missing", "item-0")


# =============================================================================
# Nack Tests
# =============================================================================


class TestNack:
    """Tests for nack and retry bookkeeping."""

    @pytest.mark.asyncio
    async def test_nack_with_attempts_left_requeues(self, queue: InMemoryWorkQueue):
        """Nack should return the item to pending and record the error."""
        await queue.push("j1", make_items(1))
        item = await queue.pop("j1")

        await queue.nack("j1", item.id, RuntimeError("provider timeout"))

        progress = await queue.progress("j1")
        assert progress.pending == 1
        assert progress.processing == 0

        retried = await queue.pop("j1")
        assert retried.id == item.id
        assert retried.attempt == 2
        assert retried.error == "provider timeout"

    @pytest.mark.asyncio
    async def test_requeued_item_goes_to_tail(self, queue: InMemoryWorkQueue):
        """Retries are not prioritized ahead of fresher work."""
        await queue.push("j1", make_items(3))
        first = await queue.pop("j1")

        await queue.nack("j1", first.id, "flaky")

        ids = [(await queue.pop("j1")).id for _ in range(3)]
        assert ids == ["item-1", "item-2", "item-0"]

    @pytest.mark.asyncio
    async def test_requeued_item_clears_started_at(self, queue: InMemoryWorkQueue):
        """A requeued item is no longer considered started."""
        await queue.push("j1", make_items(1))
        item = await queue.pop("j1")
        await queue.nack("j1", item.id, "flaky")

        # Not stalled: it is pending again
        assert await queue.get_stalled_items("j1", 0) == []

    @pytest.mark.asyncio
    async def test_retry_bound(self, queue: InMemoryWorkQueue):
        """An item nacked max_attempts times ends failed and never re-enters pending."""
        await queue.push("j1", make_items(1, max_attempts=3))

        for attempt in range(1, 4):
            item = await queue.pop("j1")
            assert item.attempt == attempt
            await queue.nack("j1", item.id, f"attempt {attempt} failed")

        progress = await queue.progress("j1")
        assert progress.pending == 0
        assert progress.failed == 1

        failed = await queue.get_failed_items("j1")
        assert failed[0].status == WorkItemStatus.FAILED
        assert failed[0].attempt == 3
        assert failed[0].attempt <= failed[0].max_attempts
        assert failed[0].error == "attempt 3 failed"
        assert failed[0].completed_at is not None

        with pytest.raises(QueueEmptyError):
            await queue.pop("j1")

    @pytest.mark.asyncio
    async def test_nack_without_error(self, queue: InMemoryWorkQueue):
        """Nack with no error records an empty error string."""
        await queue.push("j1", make_items(1, max_attempts=1))
        item = await queue.pop("j1")

        await queue.nack("j1", item.id)

        failed = await queue.get_failed_items("j1")
        assert failed[0].error == ""

    @pytest.mark.asyncio
    async def test_nack_unknown_item_fails(self, queue: InMemoryWorkQueue):
        """Nack of an item not in processing raises ItemNotFoundError."""
        await queue.push("j1", make_items(1))

        with pytest.raises(ItemNotFoundError):
            await queue.nack("j1", "nope", "boom")

    @pytest.mark.asyncio
    async def test_nack_unknown_job_fails(self, queue: InMemoryWorkQueue):
        """Nack on an unknown job raises JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            await queue.nack("missing", "item-0", "boom")


# =============================================================================
# Progress Tests
# =============================================================================


class TestProgress:
    """Tests for progress accounting."""

    @pytest.mark.asyncio
    async def test_end_to_end_scenario(self, queue: InMemoryWorkQueue):
        """Pop two, ack one, exhaust the other: 2 pending, 1 completed, 1 failed."""
        await queue.push("j1", make_items(4, max_attempts=1))

        first = await queue.pop("j1")
        second = await queue.pop("j1")
        await queue.ack("j1", first.id, b"{}")
        await queue.nack("j1", second.id, "no attempts left")

        progress = await queue.progress("j1")
        assert progress.pending == 2
        assert progress.processing == 0
        assert progress.completed == 1
        assert progress.failed == 1
        assert progress.total == 4
        assert not progress.is_complete
        assert progress.completed_at is None

    @pytest.mark.asyncio
    async def test_accounting_holds_after_every_operation(self, queue: InMemoryWorkQueue):
        """pending + processing + completed + failed == total throughout a job."""
        await queue.push("j1", make_items(6, max_attempts=2))
        await assert_accounting(queue, "j1")

        for step in range(12):
            try:
                item = await queue.pop("j1")
            except QueueEmptyError:
                break
            await assert_accounting(queue, "j1")

            if step % 3 == 0:
                await queue.nack("j1", item.id, "retry me")
            else:
                await queue.ack("j1", item.id)
            await assert_accounting(queue, "j1")

        progress = await queue.progress("j1")
        assert progress.total == 6
        assert progress.is_complete

    @pytest.mark.asyncio
    async def test_completed_at_is_latest_terminal_time(self, queue: InMemoryWorkQueue):
        """A complete job reports the latest completion time of its items."""
        await queue.push("j1", make_items(2, max_attempts=1))
        first = await queue.pop("j1")
        second = await queue.pop("j1")
        await queue.ack("j1", first.id)
        await queue.nack("j1", second.id, "boom")

        progress = await queue.progress("j1")
        completed = await queue.get_completed_items("j1")
        failed = await queue.get_failed_items("j1")

        assert progress.is_complete
        assert progress.progress_pct == 100.0
        assert progress.completed_at == max(completed[0].completed_at, failed[0].completed_at)

    @pytest.mark.asyncio
    async def test_progress_unknown_job_fails(self, queue: InMemoryWorkQueue):
        """Progress on a job that was never pushed raises JobNotFoundError."""
        with pytest.raises(JobNotFoundError) as exc_info:
            await queue.progress("missing")

        assert exc_info.value.job_id == "missing"

    @pytest.mark.asyncio
    async def test_item_listing_unknown_job_fails(self, queue: InMemoryWorkQueue):
        """Completed/failed listings on an unknown job raise JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            await queue.get_completed_items("missing")
        with pytest.raises(JobNotFoundError):
            await queue.get_failed_items("missing")


# =============================================================================
# Stalled Item Recovery Tests
# =============================================================================


class TestStalledItems:
    """Tests for the visibility timeout sweep."""

    @pytest.mark.asyncio
    async def test_get_stalled_items_respects_threshold(self, queue: InMemoryWorkQueue):
        """Only items idle longer than the threshold are stalled."""
        await queue.push("j1", make_items(2))
        await queue.pop("j1")

        assert await queue.get_stalled_items("j1", 3600) == []
        stalled = await queue.get_stalled_items("j1", 0)
        assert [item.id for item in stalled] == ["item-0"]

    @pytest.mark.asyncio
    async def test_requeue_stalled_nacks_with_timeout_error(self, queue: InMemoryWorkQueue):
        """Stalled items return to pending with a visibility timeout error."""
        await queue.push("j1", make_items(1))
        await queue.pop("j1")

        reclaimed = await queue.requeue_stalled("j1", 0)

        assert reclaimed == 1
        item = await queue.pop("j1")
        assert item.attempt == 2
        assert item.error == VISIBILITY_TIMEOUT_ERROR

    @pytest.mark.asyncio
    async def test_requeue_stalled_respects_retry_budget(self, queue: InMemoryWorkQueue):
        """A stalled item on its last attempt fails."""
        await queue.push("j1", make_items(1, max_attempts=1))
        await queue.pop("j1")

        await queue.requeue_stalled("j1", 0)

        failed = await queue.get_failed_items("j1")
        assert len(failed) == 1
        assert failed[0].error == VISIBILITY_TIMEOUT_ERROR

    @pytest.mark.asyncio
    async def test_stalled_item_cannot_be_acked_late(self, queue: InMemoryWorkQueue):
        """A worker acking a reclaimed item gets ItemNotFoundError."""
        await queue.push("j1", make_items(1))
        item = await queue.pop("j1")
        await queue.requeue_stalled("j1", 0)

        with pytest.raises(ItemNotFoundError):
            await queue.ack("j1", item.id)

    @pytest.mark.asyncio
    async def test_default_threshold_is_visibility_timeout(self):
        """Without an explicit threshold the queue's visibility timeout applies."""
        queue = InMemoryWorkQueue(visibility_timeout_seconds=300)
        await queue.push("j1", make_items(1))
        item = await queue.pop("j1")

        assert item.started_at is not None
        assert await queue.get_stalled_items("j1") == []


# =============================================================================
# Isolation and Lifecycle Tests
# =============================================================================


class TestIsolation:
    """Returned items must never alias queue state."""

    @pytest.mark.asyncio
    async def test_returned_items_are_immutable(self, queue: InMemoryWorkQueue):
        """Items are frozen; callers cannot mutate them in place."""
        await queue.push("j1", make_items(1))
        item = await queue.pop("j1")

        with pytest.raises(ValidationError):
            item.status = WorkItemStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_listing_is_a_snapshot(self, queue: InMemoryWorkQueue):
        """Mutating a returned list does not change the queue."""
        await queue.push("j1", make_items(1))
        item = await queue.pop("j1")
        await queue.ack("j1", item.id)

        completed = await queue.get_completed_items("j1")
        completed.clear()

        assert len(await queue.get_completed_items("j1")) == 1


class TestClose:
    """Tests for close."""

    @pytest.mark.asyncio
    async def test_operations_after_close_fail(self, queue: InMemoryWorkQueue):
        """Every operation raises QueueClosedError after close."""
        await queue.push("j1", make_items(1))
        await queue.close()

        with pytest.raises(QueueClosedError):
            await queue.push("j1", make_items(1))
        with pytest.raises(QueueClosedError):
            await queue.pop("j1")
        with pytest.raises(QueueClosedError):
            await queue.ack("j1", "item-0")
        with pytest.raises(QueueClosedError):
            await queue.nack("j1", "item-0")
        with pytest.raises(QueueClosedError):
            await queue.progress("j1")
        with pytest.raises(QueueClosedError):
            await queue.get_completed_items("j1")
        with pytest.raises(QueueClosedError):
            await queue.get_failed_items("j1")
        with pytest.raises(QueueClosedError):
            await queue.requeue_stalled("j1", 0)

    @pytest.mark.asyncio
    async def test_push_empty_after_close_fails(self, queue: InMemoryWorkQueue):
        """Even an empty push is rejected once closed."""
        await queue.close()

        with pytest.raises(QueueClosedError):
            await queue.push("j1", [])

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, queue: InMemoryWorkQueue):
        """Closing twice is allowed."""
        await queue.close()
        await queue.close()

    @pytest.mark.asyncio
    async def test_close_while_waiting_on_job_lock(self, queue: InMemoryWorkQueue):
        """Operations blocked on a job lock fail once the queue closes under them."""
        await queue.push("j1", make_items(2))
        state = queue._jobs["j1"]

        async with state.lock:
            push = asyncio.create_task(queue.push("j1", [WorkItem(id="late")]))
            pop = asyncio.create_task(queue.pop("j1"))
            await asyncio.sleep(0)
            await queue.close()

        with pytest.raises(QueueClosedError):
            await push
        with pytest.raises(QueueClosedError):
            await pop
        assert [item.id for item in state.pending] == ["item-0", "item-1"]
