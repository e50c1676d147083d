"""Rich-based output utilities for the riotplan CLI."""

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from riotplan.plans.extract import PlanSummary

# Shared console instance
console = Console()

# Errors and progress go to stderr so stdout stays machine-readable
err_console = Console(stderr=True)


def print_json(data: Any) -> None:
    """Print data as formatted JSON to stdout."""
    console.print_json(json.dumps(data, default=str))


def print_error(message: str) -> None:
    """Print an error message in red."""
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def print_info(message: str) -> None:
    """Print an informational message."""
    err_console.print(f"[dim]{message}[/dim]")


def plans_table(plans: list[PlanSummary]) -> Table:
    """Build a table of plans (ref, name, stage, progress)."""
    table = Table(title=f"Plans ({len(plans)})")
    table.add_column("Ref", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Stage", style="magenta")
    table.add_column("Progress", justify="right")
    for plan in plans:
        progress = ""
        if plan.progress and "percentage" in plan.progress:
            progress = f"{plan.progress['percentage']}%"
        table.add_row(plan.ref, plan.name, plan.stage, progress)
    return table
