"""
Job Partitioner.

Turns a declarative evaluation request into independent work items:
- list_scenarios_from_config: enumerate scenarios from an arena config file
- filter_scenarios: include/exclude glob selection
- partition: scenario x provider expansion into WorkItems
- batch / estimate_work_items: chunking and pre-flight sizing helpers
"""

from src.arena.partitioner.filters import filter_scenarios
from src.arena.partitioner.partition import batch, estimate_work_items, partition
from src.arena.partitioner.scenarios import (
    DEFAULT_SCENARIO_ID,
    list_scenarios_from_config,
    scenario_id_from_filename,
)

__all__ = [
    "partition",
    "batch",
    "estimate_work_items",
    "filter_scenarios",
    "list_scenarios_from_config",
    "scenario_id_from_filename",
    "DEFAULT_SCENARIO_ID",
]
