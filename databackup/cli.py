"""Command Line Interface for DataBackup."""

import sys
from pathlib import Path
from typing import List, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from tqdm import tqdm

from .adb import ADBError, check_adb_available, get_device_by_serial
from .backup import BackupStorage, DeviceCatalogSource, create_controller
from .config import DEFAULT_CONFIG_PATH, DataBackupConfig, load_config
from .errors import DataBackupError, EmptyManifestError, ManifestConflictError, UnknownEntryError
from .session import ConflictPolicy, ControllerState, ItemCatalog, Manifest, Outcome, SessionLogPersister, WorkflowType
from .util import format_duration, format_size, setup_logging

console = Console()

WORKFLOW_CHOICE = click.Choice([w.value for w in WorkflowType])
POLICY_CHOICE = click.Choice([p.value for p in ConflictPolicy])

OUTCOME_STYLES = {
    Outcome.SUCCESS: "green",
    Outcome.FAILED: "red",
    Outcome.SKIPPED: "yellow",
}


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), help="Configuration file path")
@click.pass_context
def cli(ctx, verbose: bool, config_path: Optional[Path]):
    """DataBackup - backup and restore apps and media of a rooted Android device."""
    try:
        config = load_config(config_path)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        sys.exit(1)
    setup_logging(level="DEBUG" if verbose else config.log_level, log_file=config.log_dir / "databackup.log")

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path or DEFAULT_CONFIG_PATH


def _get_device(config: DataBackupConfig):
    if not check_adb_available(config.adb_path):
        console.print("[red]Error: ADB is not available or not in PATH[/red]")
        sys.exit(1)
    try:
        device = get_device_by_serial(config.serial, config.adb_path)
        console.print(f"[cyan]Device: {device.get_device_info().display_name}[/cyan]")
    except ADBError as e:
        console.print(f"[red]ADB Error: {e}[/red]")
        sys.exit(1)
    return device


@cli.command("catalog")
@click.argument("workflow", type=WORKFLOW_CHOICE)
@click.pass_context
def catalog_cmd(ctx, workflow: str):
    """List the candidates of a workflow."""
    config = ctx.obj["config"]
    device = _get_device(config)
    workflow_type = WorkflowType(workflow)

    storage = BackupStorage(config.backup_root)
    catalog = ItemCatalog(DeviceCatalogSource(device, storage, config))

    try:
        snapshot = catalog.load(workflow_type)
    except DataBackupError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    table = Table(title=workflow_type.strategy.title)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Size", style="white")
    table.add_column("Last snapshot", style="white")
    table.add_column("Available", style="green")

    for entry in snapshot.entries():
        table.add_row(
            entry.identifier,
            entry.name,
            format_size(entry.size),
            entry.last_timestamp or "-",
            "Yes" if entry.available else "No",
        )

    console.print(table)


def _show_manifest(manifest: Manifest) -> None:
    table = Table(title=f"Manifest - {manifest.workflow.value}")
    table.add_column("#", style="white")
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="white")
    table.add_column("Parts", style="white")
    table.add_column("Status", style="white")

    for number, entry in enumerate(manifest.entries, start=1):
        status = "overwrite" if entry.overwrite else entry.status.value
        table.add_row(str(number), entry.source_id, entry.target_id, ", ".join(entry.components), status)
    for entry in manifest.rejected:
        table.add_row("-", entry.source_id, entry.target_id, "", f"[red]{entry.status.value}: {entry.reason}[/red]")

    console.print(table)


@cli.command("run")
@click.argument("workflow", type=WORKFLOW_CHOICE)
@click.option("--select", "-i", "identifiers", multiple=True, help="Entry to select (repeatable)")
@click.option("--all", "select_all", is_flag=True, help="Select every entry")
@click.option("--policy", "-p", type=POLICY_CHOICE, help="Conflict policy")
@click.option("--parallel", type=click.IntRange(min=1), help="Entries to run concurrently")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def run_cmd(ctx, workflow: str, identifiers: List[str], select_all: bool,
            policy: Optional[str], parallel: Optional[int], yes: bool):
    """Run a backup or restore session."""
    config = ctx.obj["config"]
    if parallel:
        config.session.max_parallel = parallel

    device = _get_device(config)
    controller = create_controller(device, config)
    workflow_type = WorkflowType(workflow)

    try:
        controller.start(workflow_type)
    except DataBackupError as e:
        console.print(f"[red]Session could not start: {e}[/red]")
        sys.exit(1)

    if select_all or identifiers:
        # Explicit choices replace the selection remembered from the last session
        controller.clear()
    if select_all:
        controller.select_all()
    for identifier in identifiers:
        try:
            controller.select(identifier)
        except UnknownEntryError as e:
            console.print(f"[yellow]{e}[/yellow]")

    try:
        manifest = controller.build_manifest(conflict_policy=policy)
    except (EmptyManifestError, ManifestConflictError) as e:
        console.print(f"[red]{e}[/red]")
        controller.flush_log()
        sys.exit(1)

    _show_manifest(manifest)

    if not yes and not click.confirm(f"Run {len(manifest.entries)} operations?", default=True):
        controller.cancel()
        console.print("[yellow]Session cancelled[/yellow]")
        return

    stream = controller.confirm_and_execute()
    try:
        with tqdm(total=len(manifest.entries), desc=workflow_type.value, unit="item") as pbar:
            for update in stream:
                pbar.n = update.completed
                pbar.set_postfix_str(f"failed={update.failed_count}")
                pbar.refresh()
    except DataBackupError as e:
        console.print(f"[red]Session aborted: {e}[/red]")
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted, saving session log[/yellow]")
        stream.close()
        raise

    progress = controller.progress()
    _show_results(controller.results())

    for warning in progress.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")

    colour = "green" if progress.failed_count == 0 and progress.state == ControllerState.COMPLETED else "yellow"
    console.print(
        f"[bold {colour}]{progress.state.value.capitalize()}: "
        f"{progress.completed - progress.failed_count}/{progress.total} succeeded[/bold {colour}]"
    )
    if progress.state == ControllerState.ABORTED:
        sys.exit(2)


def _show_results(results) -> None:
    if not results:
        return

    table = Table(title="Results")
    table.add_column("Source", style="cyan")
    table.add_column("Outcome", style="white")
    table.add_column("Size", style="white")
    table.add_column("Time", style="white")
    table.add_column("Detail", style="white")

    for result in results:
        style = OUTCOME_STYLES[result.outcome]
        table.add_row(
            result.source_id,
            f"[{style}]{result.outcome.value}[/{style}]",
            format_size(result.bytes_processed),
            format_duration(result.duration_seconds),
            result.error_detail or "",
        )

    console.print(table)


@cli.group()
def log():
    """Session log commands."""
    pass


@log.command("sessions")
@click.argument("workflow", type=WORKFLOW_CHOICE)
@click.pass_context
def log_sessions(ctx, workflow: str):
    """List the sessions recorded for a workflow."""
    persister = SessionLogPersister(ctx.obj["config"].log_dir)
    sessions = persister.sessions(WorkflowType(workflow))

    if not sessions:
        console.print("[yellow]No sessions recorded[/yellow]")
        return
    for started_at in sessions:
        console.print(started_at)


@log.command("show")
@click.argument("workflow", type=WORKFLOW_CHOICE)
@click.option("--session", "-s", "session_started_at", help="Session start time (see 'log sessions')")
@click.pass_context
def log_show(ctx, workflow: str, session_started_at: Optional[str]):
    """Show recorded results of a workflow."""
    persister = SessionLogPersister(ctx.obj["config"].log_dir)
    results = persister.load(WorkflowType(workflow), session_started_at)

    if not results:
        console.print("[yellow]No results recorded[/yellow]")
        return
    _show_results(results)


@cli.group("config")
def config_group():
    """Configuration commands."""
    pass


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Print the effective configuration."""
    config = ctx.obj["config"]

    table = Table(title=f"Configuration - {ctx.obj['config_path']}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    for section, values in config.model_dump(mode="json").items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", str(value))
        else:
            table.add_row(section, str(values))

    console.print(table)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
