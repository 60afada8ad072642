"""
Scenario Filtering.

Include/exclude glob filters over enumerated scenarios.
"""

from __future__ import annotations

from collections.abc import Sequence
from fnmatch import fnmatchcase

from src.arena.models import Scenario


def filter_scenarios(
    scenarios: Sequence[Scenario],
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
) -> list[Scenario]:
    """
    Select scenarios by glob patterns.

    Include patterns are applied first (an empty include list keeps every
    scenario); exclude patterns are then applied to what remains. Each
    pattern is matched against the scenario's relative path and against its
    bare filename. Input order is preserved.

    Example:
        filter_scenarios(scenarios, include=["scenarios/*.yaml"], exclude=["*-wip.yaml"])
    """
    selected = list(scenarios)

    if include:
        selected = [s for s in selected if _matches_any(s, include)]

    if exclude:
        selected = [s for s in selected if not _matches_any(s, exclude)]

    return selected


def _matches_any(scenario: Scenario, patterns: Sequence[str]) -> bool:
    filename = scenario.filename
    return any(
        fnmatchcase(scenario.path, pattern) or fnmatchcase(filename, pattern)
        for pattern in patterns
    )


__all__ = ["filter_scenarios"]
