"""
Arena CLI

Inspect how an arena config is split into work items, and run a job
end-to-end in-process with simulated workers.

Usage:
    # List scenarios referenced by an arena config
    arena scenarios config.arena.yaml --include "scenarios/billing*"

    # Show the work items a job would produce
    arena partition config.arena.yaml -p default/openai -p default/claude

    # Run the whole pipeline with 4 simulated workers, failing one scenario
    arena simulate config.arena.yaml -p default/openai --workers 4 --fail greeting-test
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from src.arena.config import ArenaSettings, WorkerConfig
from src.arena.coordinator import ArenaCoordinator, JobRequest
from src.arena.exceptions import ArenaError
from src.arena.models import Provider, Scenario, WorkItem
from src.arena.partitioner import filter_scenarios, list_scenarios_from_config, partition
from src.arena.queue import create_queue
from src.arena.results import JobResults
from src.arena.storage import create_storage
from src.arena.worker import ArenaWorker

logger = logging.getLogger(__name__)
console = Console()

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

app = typer.Typer(
    name="arena",
    help="Arena - distributed evaluation of scenarios across providers",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Arena command-line interface."""
    settings = ArenaSettings()
    logging.basicConfig(
        level=logging.DEBUG if verbose or settings.verbose else logging.INFO,
        format=LOG_FORMAT,
    )


@app.command("scenarios")
def list_scenarios(
    config_path: Annotated[Path, typer.Argument(help="Arena config file")],
    include: Annotated[
        list[str] | None,
        typer.Option("--include", "-i", help="Glob of scenarios to keep (can be repeated)"),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", "-x", help="Glob of scenarios to drop (can be repeated)"),
    ] = None,
) -> None:
    """List the scenarios referenced by an arena config."""
    try:
        scenarios = filter_scenarios(list_scenarios_from_config(config_path), include, exclude)
    except ArenaError as e:
        _fail(e)

    table = Table(title="Scenarios", show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Path")
    table.add_column("Tags")
    for scenario in scenarios:
        table.add_row(
            escape(scenario.id),
            escape(scenario.name),
            escape(scenario.path),
            escape(", ".join(scenario.tags)),
        )

    console.print(table)
    console.print(f"{len(scenarios)} scenarios")


@app.command("partition")
def partition_command(
    config_path: Annotated[Path, typer.Argument(help="Arena config file")],
    providers: Annotated[
        list[str],
        typer.Option("--provider", "-p", help="Provider as namespace/name (can be repeated)"),
    ],
    job_id: Annotated[str, typer.Option("--job-id", help="Job identifier")] = "arena-job",
    bundle_url: Annotated[
        str,
        typer.Option("--bundle-url", help="URL workers fetch the bundle from"),
    ] = "",
    max_retries: Annotated[
        int | None,
        typer.Option("--max-retries", help="Attempts per work item (default from settings)"),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print work items as JSON")] = False,
) -> None:
    """Show the work items a job over this config would produce."""
    settings = ArenaSettings()
    try:
        items = partition(
            job_id,
            bundle_url,
            list_scenarios_from_config(config_path),
            _parse_providers(providers),
            max_retries or settings.max_retries,
        )
    except ArenaError as e:
        _fail(e)

    if as_json:
        typer.echo(json.dumps([_item_summary(item) for item in items], indent=2))
        return

    table = Table(title=f"Work items for {escape(job_id)}", show_header=True, header_style="bold")
    table.add_column("Item")
    table.add_column("Scenario")
    table.add_column("Provider")
    table.add_column("Attempts", justify="right")
    for item in items:
        table.add_row(
            escape(item.id),
            escape(item.scenario_id),
            escape(item.provider_id),
            str(item.max_attempts),
        )

    console.print(table)
    console.print(f"{len(items)} work items")


@app.command("simulate")
def simulate(
    config_path: Annotated[Path, typer.Argument(help="Arena config file")],
    providers: Annotated[
        list[str],
        typer.Option("--provider", "-p", help="Provider as namespace/name (can be repeated)"),
    ],
    workers: Annotated[int, typer.Option("--workers", "-w", help="Simulated workers")] = 2,
    fail: Annotated[
        list[str] | None,
        typer.Option("--fail", help="Scenario ID whose items always fail (can be repeated)"),
    ] = None,
    job_id: Annotated[str, typer.Option("--job-id", help="Job identifier")] = "arena-simulation",
    max_retries: Annotated[
        int | None,
        typer.Option("--max-retries", help="Attempts per work item (default from settings)"),
    ] = None,
) -> None:
    """
    Run a job end-to-end in-process.

    Partitions the config, runs simulated workers against an in-memory
    queue, then aggregates and stores the results. Every item passes except
    those of scenarios listed with --fail.
    """
    try:
        scenarios = list_scenarios_from_config(config_path)
        results = asyncio.run(
            _simulate_async(
                job_id=job_id,
                scenarios=scenarios,
                providers=_parse_providers(providers),
                workers=max(workers, 1),
                failing=set(fail or []),
                max_retries=max_retries,
            )
        )
    except ArenaError as e:
        _fail(e)

    _print_results(results)


async def _simulate_async(
    job_id: str,
    scenarios: list[Scenario],
    providers: list[Provider],
    workers: int,
    failing: set[str],
    max_retries: int | None,
) -> JobResults:
    """Async implementation of the simulate command."""
    config = ArenaSettings().to_config()
    queue = await create_queue(config.queue)
    storage = await create_storage(config.storage)

    async def execute(item: WorkItem) -> dict:
        if item.scenario_id in failing:
            raise RuntimeError(f"simulated failure for scenario {item.scenario_id}")
        return {"status": "pass", "durationMs": 1}

    try:
        coordinator = ArenaCoordinator(queue, storage, config.coordinator, config.queue)
        total = await coordinator.start_job(
            JobRequest(
                job_id=job_id,
                bundle_url=f"memory://{job_id}",
                scenarios=scenarios,
                providers=providers,
                max_retries=max_retries,
                config_name=job_id,
            )
        )
        console.print(f"[green]Enqueued {total} work items for {escape(job_id)}[/green]")

        worker_config = WorkerConfig(poll_interval_seconds=0.01, max_empty_polls=3)
        pool = [
            ArenaWorker(
                f"sim-worker-{i}",
                queue,
                job_id,
                execute,
                config=worker_config,
                handle_signals=False,
            )
            for i in range(workers)
        ]
        run = await asyncio.gather(
            coordinator.wait_for_completion(job_id, poll_interval=0.05),
            *(worker.run() for worker in pool),
        )
        if not run[0].completed:
            console.print("[yellow]Job did not complete before the timeout[/yellow]")

        await coordinator.collect_results(job_id)
        return await storage.get(job_id)
    finally:
        await queue.close()
        await storage.close()


def _print_results(results: JobResults) -> None:
    summary = results.summary
    if summary is None:
        console.print("[yellow]No summary stored[/yellow]")
        return

    console.print()
    console.print(f"[bold]Job {escape(results.job_id)}[/bold]")
    console.print(
        f"Passed: {summary.passed_items}/{summary.total_items} ({summary.pass_rate:.1f}%)"
    )
    console.print(f"Failed: {summary.failed_items}")

    table = Table(title="By scenario", show_header=True, header_style="bold")
    table.add_column("Scenario")
    table.add_column("Total", justify="right")
    table.add_column("Passed", justify="right")
    table.add_column("Pass rate", justify="right")
    for scenario_id, stats in sorted(summary.by_scenario.items()):
        table.add_row(
            escape(scenario_id),
            str(stats.total),
            str(stats.passed),
            f"{stats.pass_rate:.1f}%",
        )
    console.print(table)

    for group in summary.errors:
        console.print(f"[red]{group.count}x[/red] {escape(group.message)}")


def _parse_providers(refs: list[str]) -> list[Provider]:
    try:
        return [Provider.from_ref(ref) for ref in refs]
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--provider") from e


def _item_summary(item: WorkItem) -> dict:
    return {
        "id": item.id,
        "job_id": item.job_id,
        "scenario_id": item.scenario_id,
        "provider_id": item.provider_id,
        "bundle_url": item.bundle_url,
        "max_attempts": item.max_attempts,
        "config": item.decode_config(),
    }


def _fail(error: ArenaError) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from src import __version__

    typer.echo(f"arena version {__version__}")


if __name__ == "__main__":
    app()
