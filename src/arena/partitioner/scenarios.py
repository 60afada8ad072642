"""
Scenario Enumeration.

Resolves the scenario file references of an arena config into Scenario
objects. Enumeration is best-effort: a scenario file that cannot be read or
parsed is skipped, while an unreadable arena config is an error.

Arena config layout:
    kind: Arena
    spec:
      scenarios:
        - file: scenarios/greeting.scenario.yaml

Scenario file layout:
    kind: Scenario
    metadata:
      name: Greeting Test
    spec:
      id: greeting-test
      description: Test basic greeting response
      tags: [smoke]
"""

from __future__ import annotations

import logging
import re
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from src.arena.exceptions import ScenarioConfigError
from src.arena.models import Scenario

logger = logging.getLogger(__name__)

DEFAULT_SCENARIO_ID = "scenario"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")


def list_scenarios_from_config(config_path: str | Path) -> list[Scenario]:
    """
    Enumerate the scenarios referenced by an arena config file.

    Scenario file references are resolved relative to the config's
    directory. Entries without a file, and files that cannot be read or
    parsed, are skipped.

    Args:
        config_path: Path to the arena config (e.g. config.arena.yaml)

    Returns:
        Scenarios in config order

    Raises:
        ScenarioConfigError: If the config file itself cannot be read or parsed
    """
    path = Path(config_path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ScenarioConfigError(str(path), str(e)) from e
    except yaml.YAMLError as e:
        raise ScenarioConfigError(str(path), f"invalid YAML: {e}") from e

    if data is None:
        return []
    if not isinstance(data, dict):
        raise ScenarioConfigError(str(path), "expected a mapping at the top level")

    spec = data.get("spec")
    entries = spec.get("scenarios") if isinstance(spec, dict) else None
    if not isinstance(entries, list):
        return []

    base_dir = path.parent
    scenarios: list[Scenario] = []
    for entry in entries:
        ref = entry.get("file") if isinstance(entry, dict) else None
        if not ref:
            logger.debug(f"Skipping scenario entry without file in {path}")
            continue

        scenario = _load_scenario(base_dir, str(ref))
        if scenario is not None:
            scenarios.append(scenario)

    logger.debug(f"Enumerated {len(scenarios)} scenarios from {path}")
    return scenarios


def scenario_id_from_filename(filename: str) -> str:
    """
    Derive a scenario ID from a filename.

    Strips every extension, replaces runs of non-alphanumeric characters
    with a single hyphen and trims trailing hyphens.

    Examples:
        "billing.scenario.yaml" -> "billing"
        "My Scenario.yaml" -> "My-Scenario"
        "test_case_1.yaml" -> "test-case-1"
        ".yaml" -> "scenario"
    """
    stem = PurePosixPath(filename).name.split(".", 1)[0]
    slug = _NON_ALNUM.sub("-", stem).rstrip("-")
    return slug or DEFAULT_SCENARIO_ID


def _load_scenario(base_dir: Path, ref: str) -> Scenario | None:
    """Read one scenario file, returning None if it is unusable."""
    file_path = base_dir / ref
    try:
        with open(file_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.debug(f"Skipping unreadable scenario file {file_path}: {e}")
        return None

    if data is None:
        data = {}
    if not isinstance(data, dict):
        logger.debug(f"Skipping scenario file {file_path}: expected a mapping")
        return None

    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    spec = data.get("spec") if isinstance(data.get("spec"), dict) else {}

    rel_path = Path(ref).as_posix()
    name = _string_field(metadata, "name")
    scenario_id = _string_field(spec, "id") or name or scenario_id_from_filename(rel_path)

    tags = spec.get("tags")
    return Scenario(
        id=scenario_id,
        name=name or scenario_id,
        path=rel_path,
        description=_string_field(spec, "description"),
        tags=tuple(str(t) for t in tags) if isinstance(tags, list) else (),
    )


def _string_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = [
    "DEFAULT_SCENARIO_ID",
    "list_scenarios_from_config",
    "scenario_id_from_filename",
]
