"""
Job Partitioning.

Expands a job request (scenarios x providers) into independent work items.
Each item carries its bundle URL and a serialized config so a worker can
execute it without further lookups.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any, TypeVar
from uuid import uuid4

from src.arena.exceptions import EmptyInputError, PartitionError
from src.arena.models import Provider, Scenario, WorkItem

logger = logging.getLogger(__name__)

T = TypeVar("T")


def partition(
    job_id: str,
    bundle_url: str,
    scenarios: Sequence[Scenario],
    providers: Sequence[Provider],
    max_retries: int,
    base_config: dict[str, Any] | None = None,
) -> list[WorkItem]:
    """
    Create one work item per (scenario, provider) pair.

    Args:
        job_id: Owning job identifier
        bundle_url: Where workers fetch the scenario/agent bundle
        scenarios: Scenarios to evaluate (at least one)
        providers: Providers to evaluate against (at least one)
        max_retries: Retry budget assigned to every item
        base_config: Job-level config merged into every item's payload

    Returns:
        len(scenarios) * len(providers) work items, scenario-major order

    Raises:
        EmptyInputError: If scenarios or providers is empty
        PartitionError: If IDs collide or any item's config cannot be
            serialized. No items are returned in that case.
    """
    if not scenarios:
        raise EmptyInputError("scenario")
    if not providers:
        raise EmptyInputError("provider")

    _check_unique(job_id, "scenario", [s.id for s in scenarios])
    _check_unique(job_id, "provider", [p.id for p in providers])

    items: list[WorkItem] = []
    seen_ids: set[str] = set()

    for scenario in scenarios:
        for provider in providers:
            try:
                config = _build_config(scenario, provider, base_config)
            except (TypeError, ValueError) as e:
                raise PartitionError(
                    job_id,
                    f"failed to serialize config: {e}",
                    scenario_id=scenario.id,
                    provider_id=provider.id,
                ) from e

            item_id = _item_id(scenario.id)
            while item_id in seen_ids:
                item_id = _item_id(scenario.id)
            seen_ids.add(item_id)

            items.append(
                WorkItem(
                    id=item_id,
                    job_id=job_id,
                    scenario_id=scenario.id,
                    provider_id=provider.id,
                    bundle_url=bundle_url,
                    config=config,
                    max_attempts=max_retries,
                )
            )

    logger.info(
        f"Partitioned job {job_id}: {len(scenarios)} scenarios x "
        f"{len(providers)} providers = {len(items)} work items"
    )
    return items


def batch(items: Sequence[T], size: int) -> list[list[T]]:
    """
    Split items into chunks of at most `size`.

    The last chunk may be shorter. A non-positive size returns all items
    as a single chunk.
    """
    if size <= 0:
        return [list(items)]
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def estimate_work_items(num_scenarios: int, num_providers: int) -> int:
    """Number of work items a partition would produce, without building them."""
    return num_scenarios * num_providers


def _check_unique(job_id: str, kind: str, ids: list[str]) -> None:
    seen: set[str] = set()
    for value in ids:
        if value in seen:
            raise PartitionError(job_id, f"duplicate {kind} id '{value}'")
        seen.add(value)


def _build_config(
    scenario: Scenario,
    provider: Provider,
    base_config: dict[str, Any] | None,
) -> bytes:
    """Shallow-merge the base config with scenario and provider descriptors."""
    merged: dict[str, Any] = dict(base_config or {})
    merged["scenario"] = scenario.model_dump(mode="json")
    merged["provider"] = provider.model_dump(mode="json")
    return json.dumps(merged).encode("utf-8")


def _item_id(scenario_id: str) -> str:
    return f"{scenario_id}-{uuid4().hex[:12]}"


__all__ = ["partition", "batch", "estimate_work_items"]
