"""
Result Aggregation.

Turns the terminal work items of a job into ExecutionResults and a
job-level AggregatedResult.

Workers ack items with a JSON payload:
    {
        "status": "pass" | "fail",
        "error": "...",
        "durationMs": 1250,          # or "duration": "1.25s"
        "metrics": {"tokens": 512, "cost": 0.004},
        "assertions": [{"name": "...", "passed": true, "message": "..."}]
    }

JUnit XML reports (<testsuites> or <testsuite>) are accepted as well.

A missing or unparseable payload is not an error: the outcome is inferred
from the item's queue status instead.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from xml.etree import ElementTree

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.arena.models import WorkItem, WorkItemStatus
from src.arena.queue.protocol import WorkQueue
from src.arena.results import (
    AggregatedResult,
    AssertionResult,
    ErrorGroup,
    ExecutionResult,
    GroupStats,
    ResultStatus,
)

logger = logging.getLogger(__name__)

TOKENS_METRIC = "tokens"
COST_METRIC = "cost"

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class _ResultPayload(BaseModel):
    """Wire shape of a worker's ack payload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str = ""
    error: str = ""
    duration_ms: float = Field(default=0.0, alias="durationMs")
    duration: str = ""
    metrics: dict[str, float] = Field(default_factory=dict)
    assertions: list[AssertionResult] = Field(default_factory=list)


def parse_execution_result(item: WorkItem) -> ExecutionResult:
    """
    Build an ExecutionResult from a terminal work item.

    Duration comes from the item's started/completed timestamps, falling
    back to the payload's durationMs, then its duration string.
    """
    result = ExecutionResult(
        work_item_id=item.id,
        scenario_id=item.scenario_id,
        provider_id=item.provider_id,
        duration_seconds=_item_duration(item),
    )

    if not item.result:
        return _infer_from_item(result, item)

    if item.result.lstrip().startswith(b"<"):
        return _from_junit(result, item)

    try:
        payload = _ResultPayload.model_validate_json(item.result)
    except ValidationError:
        logger.debug(f"Unparseable result payload for item {item.id}, inferring status")
        return _infer_from_item(result, item)

    if payload.status:
        status = _status_from_text(payload.status)
    elif item.status == WorkItemStatus.COMPLETED:
        status = ResultStatus.PASS
    else:
        status = ResultStatus.FAIL

    duration = result.duration_seconds
    if duration == 0:
        duration = _payload_duration(payload)

    return result.model_copy(
        update={
            "status": status,
            "error": payload.error or item.error,
            "duration_seconds": duration,
            "metrics": dict(payload.metrics),
            "assertions": list(payload.assertions),
        }
    )


def parse_duration(text: str) -> float:
    """
    Parse a duration string such as "1.5s", "250ms" or "1h30m" into seconds.

    Raises:
        ValueError: If the text is not a valid duration
    """
    value = text.strip()
    sign = 1.0
    if value[:1] in ("+", "-"):
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]
    if value == "0":
        return 0.0

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if not value or pos != len(value):
        raise ValueError(f"invalid duration: {text!r}")
    return sign * total


def parse_junit_xml(data: bytes) -> ExecutionResult:
    """
    Parse a JUnit XML report into an ExecutionResult.

    Accepts a <testsuites> document or a single <testsuite>. Each testcase
    becomes an assertion named "classname.name"; the result fails when any
    suite reports failures or errors. The returned result carries no work
    item attribution.

    Raises:
        ValueError: If the data is empty or not a JUnit report
    """
    if not data:
        raise ValueError("empty JUnit report")
    try:
        root = ElementTree.fromstring(data)
    except ElementTree.ParseError as e:
        raise ValueError(f"invalid JUnit XML: {e}") from e

    if root.tag == "testsuites" and root.findall("testsuite"):
        suites = root.findall("testsuite")
    elif root.tag == "testsuite" and _int_attr(root, "tests") > 0:
        suites = [root]
    else:
        raise ValueError(f"not a JUnit report: <{root.tag}>")

    metrics = dict.fromkeys(("tests", "failures", "errors", "skipped"), 0.0)
    duration = 0.0
    assertions: list[AssertionResult] = []

    for suite in suites:
        for key in metrics:
            metrics[key] += _int_attr(suite, key)
        duration += _float_attr(suite, "time")

        for case in suite.findall("testcase"):
            problem = case.find("failure")
            if problem is None:
                problem = case.find("error")
            assertions.append(
                AssertionResult(
                    name=f"{case.get('classname', '')}.{case.get('name', '')}",
                    passed=problem is None,
                    message=problem.get("message", "") if problem is not None else "",
                )
            )

    failed = metrics["failures"] > 0 or metrics["errors"] > 0
    return ExecutionResult(
        work_item_id="",
        status=ResultStatus.FAIL if failed else ResultStatus.PASS,
        duration_seconds=duration,
        metrics=metrics,
        assertions=assertions,
    )


def aggregate_results(results: Iterable[ExecutionResult]) -> AggregatedResult:
    """Compute job-level statistics from per-item results."""
    aggregated = AggregatedResult()
    errors: dict[str, ErrorGroup] = {}

    for result in results:
        aggregated.total_items += 1
        if result.passed:
            aggregated.passed_items += 1
        else:
            aggregated.failed_items += 1

        aggregated.total_duration_seconds += result.duration_seconds
        aggregated.total_tokens += int(result.metrics.get(TOKENS_METRIC, 0))
        aggregated.total_cost += result.metrics.get(COST_METRIC, 0.0)

        _count(aggregated.by_scenario, result.scenario_id, result.passed)
        _count(aggregated.by_provider, result.provider_id, result.passed)

        if not result.passed and result.error:
            group = errors.setdefault(result.error, ErrorGroup(message=result.error))
            group.count += 1
            group.work_item_ids.append(result.work_item_id)

    if aggregated.total_items:
        aggregated.pass_rate = aggregated.passed_items / aggregated.total_items * 100
        aggregated.avg_duration_seconds = (
            aggregated.total_duration_seconds / aggregated.total_items
        )

    for stats in (*aggregated.by_scenario.values(), *aggregated.by_provider.values()):
        stats.pass_rate = stats.passed / stats.total * 100

    aggregated.errors = list(errors.values())
    return aggregated


def summary_fields(aggregated: AggregatedResult) -> dict[str, str]:
    """
    Flatten an aggregate into string fields for job metadata.

    totalTokens and totalCost are only present when non-zero.
    """
    fields = {
        "passRate": f"{aggregated.pass_rate:.1f}",
        "totalItems": str(aggregated.total_items),
        "passedItems": str(aggregated.passed_items),
        "failedItems": str(aggregated.failed_items),
        "avgDurationMs": str(round(aggregated.avg_duration_seconds * 1000)),
    }
    if aggregated.total_tokens > 0:
        fields["totalTokens"] = str(aggregated.total_tokens)
    if aggregated.total_cost > 0:
        fields["totalCost"] = f"{aggregated.total_cost:.4f}"
    return fields


class Aggregator:
    """Aggregates the terminal work items of a job from a WorkQueue."""

    def __init__(self, queue: WorkQueue):
        self._queue = queue

    async def collect(self, job_id: str) -> tuple[AggregatedResult, list[ExecutionResult]]:
        """
        Parse every completed and failed item of the job and aggregate them.

        Raises:
            JobNotFoundError: If the queue does not know the job
        """
        completed = await self._queue.get_completed_items(job_id)
        failed = await self._queue.get_failed_items(job_id)

        results = [parse_execution_result(item) for item in (*completed, *failed)]
        aggregated = aggregate_results(results)

        logger.info(
            f"Aggregated job {job_id}: {aggregated.passed_items}/{aggregated.total_items} "
            f"passed ({aggregated.pass_rate:.1f}%)"
        )
        return aggregated, results

    async def aggregate(self, job_id: str) -> AggregatedResult:
        """Aggregate the job's terminal items."""
        aggregated, _ = await self.collect(job_id)
        return aggregated


def _infer_from_item(result: ExecutionResult, item: WorkItem) -> ExecutionResult:
    if item.status == WorkItemStatus.COMPLETED:
        return result.model_copy(update={"status": ResultStatus.PASS})
    if item.status == WorkItemStatus.FAILED:
        return result.model_copy(update={"status": ResultStatus.FAIL, "error": item.error})
    return result.model_copy(update={"status": ResultStatus.UNKNOWN})


def _from_junit(result: ExecutionResult, item: WorkItem) -> ExecutionResult:
    try:
        report = parse_junit_xml(item.result)
    except ValueError as e:
        logger.debug(f"Unparseable JUnit payload for item {item.id}: {e}")
        return _infer_from_item(result, item)

    return result.model_copy(
        update={
            "status": report.status,
            "error": item.error,
            "duration_seconds": result.duration_seconds or report.duration_seconds,
            "metrics": report.metrics,
            "assertions": report.assertions,
        }
    )


def _status_from_text(text: str) -> ResultStatus:
    try:
        return ResultStatus(text.lower())
    except ValueError:
        return ResultStatus.UNKNOWN


def _item_duration(item: WorkItem) -> float:
    if item.started_at is None or item.completed_at is None:
        return 0.0
    return max((item.completed_at - item.started_at).total_seconds(), 0.0)


def _payload_duration(payload: _ResultPayload) -> float:
    if payload.duration_ms > 0:
        return payload.duration_ms / 1000
    if payload.duration:
        try:
            return max(parse_duration(payload.duration), 0.0)
        except ValueError:
            return 0.0
    return 0.0


def _count(groups: dict[str, GroupStats], key: str, passed: bool) -> None:
    stats = groups.setdefault(key, GroupStats())
    stats.total += 1
    if passed:
        stats.passed += 1
    else:
        stats.failed += 1


def _int_attr(element: ElementTree.Element, name: str) -> int:
    try:
        return int(element.get(name, 0))
    except ValueError:
        return 0


def _float_attr(element: ElementTree.Element, name: str) -> float:
    try:
        return float(element.get(name, 0))
    except ValueError:
        return 0.0


__all__ = [
    "Aggregator",
    "aggregate_results",
    "parse_duration",
    "parse_execution_result",
    "parse_junit_xml",
    "summary_fields",
]
