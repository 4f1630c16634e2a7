"""
jobmetrics command line.

Commands:
- snapshot: roll elapsed minutes into snapshots (guarded by a lock)
- status:   live throughput and runtime per job and queue
- history:  snapshot series for one job or queue
- forget:   delete one metrics key
- clear:    delete every metrics key
"""

from __future__ import annotations

import dataclasses
import json
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from .config import MetricsConfig
from .errors import BackendUnavailableError, ConfigurationError
from .keys import EntityKind
from .repository import MetricsRepository

app = typer.Typer(help="Job and queue throughput metrics.", no_args_is_help=True)

console = Console()
err_console = Console(stderr=True)

_state: dict[str, object] = {}


def _get_repository() -> MetricsRepository:
    """Build a repository from the environment and global options."""
    try:
        config = MetricsConfig.from_env()
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(code=1)
    redis_url = _state.get("redis_url")
    if isinstance(redis_url, str):
        config = dataclasses.replace(config, redis_url=redis_url)
    return MetricsRepository.from_config(config)


def _fail(error: BackendUnavailableError) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {error.message}")
    return typer.Exit(code=1)


@app.callback()
def main_callback(
    redis_url: Annotated[
        str | None, typer.Option("--redis-url", help="Redis URL (default: $REDIS_URL)")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Job and queue throughput metrics."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    _state["redis_url"] = redis_url


@app.command(name="snapshot")
def snapshot_command() -> None:
    """Roll elapsed minute buckets into snapshot history."""
    repo = _get_repository()
    try:
        rolled = repo.snapshot_exclusive()
    except BackendUnavailableError as e:
        raise _fail(e)

    if rolled is None:
        console.print("[yellow]Snapshot lock held by another process, skipped.[/yellow]")
        return
    console.print(f"[green]Rolled {rolled} minute(s) into snapshots.[/green]")


@app.command(name="status")
def status_command(
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show live throughput and average runtime."""
    repo = _get_repository()
    try:
        rows: list[tuple[str, str, int, int]] = [
            ("all", "queues", *repo.rates.rate_per_minute(EntityKind.QUEUE)),
            ("all", "jobs", *repo.rates.rate_per_minute(EntityKind.JOB)),
        ]
        for kind, names in (
            (EntityKind.QUEUE, repo.measured_queues()),
            (EntityKind.JOB, repo.measured_jobs()),
        ):
            for name in sorted(names):
                rows.append((kind.label, name, *repo.rates.rate_per_minute(kind, name)))
    except BackendUnavailableError as e:
        raise _fail(e)

    if output_json:
        console.print_json(
            json.dumps(
                [
                    {"kind": kind, "name": name, "throughput": tp, "runtime_ms": rt}
                    for kind, name, tp, rt in rows
                ]
            )
        )
        return

    table = Table(title="Live metrics (per minute)")
    table.add_column("Kind", style="dim")
    table.add_column("Name")
    table.add_column("Throughput", justify="right")
    table.add_column("Avg runtime (ms)", justify="right")
    for kind, name, tp, rt in rows:
        table.add_row(kind, name, str(tp), str(rt))
    console.print(table)


@app.command(name="history")
def history_command(
    kind: Annotated[str, typer.Argument(help="Entity kind: job or queue")],
    name: Annotated[str, typer.Argument(help="Job class or queue name")],
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show the snapshot history of one job or queue."""
    try:
        entity_kind = EntityKind.parse(kind)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    repo = _get_repository()
    try:
        points = repo.roller.snapshots_for(entity_kind, name)
    except BackendUnavailableError as e:
        raise _fail(e)

    if output_json:
        console.print_json(json.dumps([p.model_dump() for p in points]))
        return

    if not points:
        console.print(f"[dim]No snapshots for {entity_kind.label} {name}.[/dim]")
        return

    table = Table(title=f"Snapshots for {entity_kind.label} {name}")
    table.add_column("Time", style="dim")
    table.add_column("Throughput", justify="right")
    table.add_column("Avg runtime (ms)", justify="right")
    for point in points:
        table.add_row(str(point.time), str(point.throughput), f"{point.runtime:.2f}")
    console.print(table)


@app.command(name="forget")
def forget_command(
    key: Annotated[str, typer.Argument(help="Redis key to delete")],
) -> None:
    """Delete one metrics key."""
    repo = _get_repository()
    try:
        repo.forget(key)
    except BackendUnavailableError as e:
        raise _fail(e)
    console.print(f"Deleted {key}")


@app.command(name="clear")
def clear_command(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete all buckets, registries, snapshots and the watermark."""
    if not yes:
        typer.confirm("Delete all stored metrics?", abort=True)
    repo = _get_repository()
    try:
        deleted = repo.clear()
    except BackendUnavailableError as e:
        raise _fail(e)
    console.print(f"Deleted {deleted} key(s)")


def main() -> None:
    app()
