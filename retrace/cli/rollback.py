# retrace/cli/rollback.py
"""
CLI commands for inspecting and executing rollbacks.
"""
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.prompt import Confirm

from retrace.execution import (
    PersistenceError,
    RollbackExecutionError,
    RollbackResult,
    get_rollback_manager,
)
from retrace.execution.models import RollbackOperation
from retrace.utils.logging import get_logger

logger = get_logger(__name__)
console = Console()

app = typer.Typer(help="Inspect and execute pipeline rollbacks")


@app.command("plan", help="Show what rolling back a pipeline would involve")
def show_plan(
    pipeline_id: str = typer.Argument(..., help="Pipeline identifier"),
):
    """Print the rollback plan of a pipeline."""
    manager = get_rollback_manager()
    try:
        plan = manager.get_rollback_plan(pipeline_id)
    except (PersistenceError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    console.print(Panel(Text(plan), title=f"Rollback Plan: {pipeline_id}", border_style="blue"))


@app.command("checkpoints", help="List the checkpoints of a pipeline")
def list_checkpoints(
    pipeline_id: str = typer.Argument(..., help="Pipeline identifier"),
):
    """List checkpoints, oldest first."""
    manager = get_rollback_manager()
    try:
        checkpoints = manager.list_checkpoints(pipeline_id)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if not checkpoints:
        console.print("[yellow]No checkpoints found.[/yellow]")
        return

    table = Table(title=f"Checkpoints of {pipeline_id}")
    table.add_column("Step", style="cyan")
    table.add_column("Timestamp", style="green")
    table.add_column("Workspace", style="white")
    table.add_column("Artifacts", style="blue")
    table.add_column("Can Rollback", style="red")

    for checkpoint in checkpoints:
        table.add_row(
            checkpoint.step_id,
            checkpoint.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            escape(checkpoint.workspace_path),
            ", ".join(sorted(checkpoint.artifacts)) or "-",
            "✓" if checkpoint.can_rollback else "✗",
        )

    console.print(table)


def _add_rows(table: Table, status: str, operations: List[RollbackOperation]) -> None:
    for op in operations:
        table.add_row(str(op.sequence or "-"), escape(op.type), escape(op.target), status)


def _print_result(result: RollbackResult) -> None:
    table = Table(title=f"Rollback of {result.pipeline_id}")
    table.add_column("#", style="cyan")
    table.add_column("Type", style="white")
    table.add_column("Target", style="blue")
    table.add_column("Outcome", style="yellow")

    _add_rows(table, "[green]reverted[/green]", result.reverted)
    _add_rows(table, "[yellow]manual[/yellow]", result.manual)
    console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")
    for error in result.errors:
        console.print(f"[red]Error:[/red] {escape(error)}")
    for op in result.manual:
        if op.revert_steps:
            console.print(f"\n[bold]Manual steps for {escape(op.describe())}:[/bold]")
            for step in op.revert_steps:
                console.print(f"  - {escape(step)}")


@app.command("run", help="Roll back a pipeline, fully or to a checkpoint")
def run_rollback(
    pipeline_id: str = typer.Argument(..., help="Pipeline identifier"),
    to_step: Optional[str] = typer.Option(
        None, "--to-step", "-s", help="Keep everything recorded up to this step's checkpoint"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Revert logged operations newest first."""
    manager = get_rollback_manager()

    try:
        checkpoint = manager.load_checkpoint(pipeline_id, to_step) if to_step else None
        plan = manager.get_rollback_plan(pipeline_id)
    except (PersistenceError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if not yes:
        console.print(Panel(Text(plan), title=f"Rollback Plan: {pipeline_id}", border_style="blue"))
        target = f"checkpoint '{to_step}'" if to_step else "the start of the pipeline"
        if not Confirm.ask(f"Roll back {pipeline_id} to {target}?"):
            console.print("[yellow]Rollback cancelled.[/yellow]")
            return

    try:
        result = manager.rollback(pipeline_id, checkpoint)
    except RollbackExecutionError as e:
        _print_result(e.result)
        console.print("[bold red]Rollback incomplete.[/bold red]")
        raise typer.Exit(code=1)
    except (PersistenceError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    _print_result(result)
    console.print("[bold green]Rollback complete.[/bold green]")


@app.command("cleanup", help="Delete all checkpoints, logs and backups of a pipeline")
def cleanup(
    pipeline_id: str = typer.Argument(..., help="Pipeline identifier"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Remove the pipeline's persisted rollback state."""
    if not yes and not Confirm.ask(f"Delete all rollback state of {pipeline_id}? This cannot be undone"):
        console.print("[yellow]Cleanup cancelled.[/yellow]")
        return

    manager = get_rollback_manager()
    try:
        manager.cleanup_checkpoints(pipeline_id)
    except (PersistenceError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    console.print(f"[green]Removed rollback state for {pipeline_id}.[/green]")
