# retrace/cli/main.py
"""
Main command-line interface for retrace.
"""
import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from retrace import __version__
from retrace.config import config_manager
from retrace.contract import ContractConfig, ValidationError, validate_with_retries
from retrace.utils.logging import setup_logging, get_logger

app = typer.Typer(help="retrace: checkpoints and rollback for automated pipelines")
logger = get_logger(__name__)
console = Console()


def version_callback(value: bool):
    """Display version information and exit."""
    if value:
        console.print(f"retrace version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    debug: bool = typer.Option(
        False, "--debug", "-d", help="Enable debug mode"
    ),
    state_dir: Optional[Path] = typer.Option(
        None, "--state-dir", help="Directory holding checkpoints, logs and backups"
    ),
    version: bool = typer.Option(
        False, "--version", "-v", callback=version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """retrace: checkpoints and rollback for automated pipelines"""
    config_manager.load_config()
    if debug:
        config_manager.config.debug = True
    if state_dir is not None:
        config_manager.config.storage.state_dir = state_dir.expanduser()

    setup_logging(debug=config_manager.config.debug)


def load_contract(path: Path) -> ContractConfig:
    """Read a contract descriptor from a JSON or YAML file."""
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(raw) or {}
    else:
        data = json.loads(raw)
    return ContractConfig.model_validate(data)


@app.command("validate")
def validate_command(
    contract_file: Path = typer.Argument(..., help="Contract descriptor (JSON or YAML)"),
    workspace: Path = typer.Option(
        Path("."), "--workspace", "-w", help="Workspace the contract is checked against"
    ),
):
    """Check a workspace against a contract."""
    try:
        contract = load_contract(contract_file)
    except (OSError, json.JSONDecodeError, yaml.YAMLError, PydanticValidationError) as e:
        console.print(f"[bold red]Cannot load contract {contract_file}:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2)

    try:
        asyncio.run(validate_with_retries(contract, str(workspace.resolve())))
    except ValidationError as e:
        style = "yellow" if e.retryable else "red"
        console.print(Panel(Text(str(e)), title="Contract failed", border_style=style))
        raise typer.Exit(code=1)

    console.print(f"[bold green]Contract {contract.type} satisfied[/bold green]")


if __name__ == "__main__":
    app()
