"""Rich console utilities for the devcycle CLI."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from devcycle.domain.models import PhaseResult, WorkflowRunResult, WorkflowRunStatus

# Shared console instances
console = Console()
error_console = Console(stderr=True)


def print_error(message: str, hint: str | None = None) -> None:
    """Print formatted error message to stderr."""
    content = Text(f"ERROR: {message}", style="bold red")
    if hint:
        content.append(f"\n\nHint: {hint}", style="yellow")
    error_console.print(Panel(content, title="Error", border_style="red"))


def print_success(message: str) -> None:
    """Print success message."""
    console.print(Panel(message, title="Success", border_style="green"))


def print_failure(message: str, details: str | None = None) -> None:
    """Print failure message."""
    content = Text(message, style="bold red")
    if details:
        content.append(f"\n{details}", style="dim")
    console.print(Panel(content, title="Failed", border_style="red"))


def print_status(display: str, cached_path: str) -> None:
    """Print the formatted project status."""
    console.print(Panel(display, title="Project Status", subtitle=cached_path, expand=False))


def print_phase_results(results: tuple[PhaseResult, ...]) -> None:
    """Print a table of phase outcomes in execution order."""
    table = Table(title="Phases")
    table.add_column("Phase", style="cyan")
    table.add_column("Agent")
    table.add_column("Result")
    table.add_column("Duration", justify="right")
    for result in results:
        outcome = "[green]PASS[/green]" if result.success else "[red]FAIL[/red]"
        table.add_row(result.phase, result.agent, outcome, f"{result.duration_ms}ms")
    console.print(table)


def print_run_result(result: WorkflowRunResult) -> None:
    """Print summary of a workflow run."""
    print_phase_results(result.phase_results)
    if result.status == WorkflowRunStatus.COMPLETED:
        print_success(f"Story {result.story_id} completed at {result.final_phase}")
        return
    last_error = next(
        (r.error for r in reversed(result.phase_results) if r.error), None
    )
    print_failure(
        f"Story {result.story_id} {result.status.value} at {result.final_phase}",
        last_error,
    )
