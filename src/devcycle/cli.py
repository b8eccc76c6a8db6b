"""Command-line interface for the devcycle orchestration core."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from devcycle.application.context_accumulator import (
    EpicContextAccumulator,
    estimate_tokens,
)
from devcycle.application.status_payload import build_status_payload
from devcycle.console import console, print_error, print_run_result, print_status
from devcycle.domain.exceptions import ConfigurationError, DevcycleError
from devcycle.factory import create_workflow_executor
from devcycle.infrastructure.config import CoreConfig, load_core_config
from devcycle.infrastructure.locking import LockManager
from devcycle.infrastructure.status import ProjectStatusLoader
from devcycle.infrastructure.stories import load_epic_progress
from devcycle.logging_setup import setup_logging


def _project_root(ctx: click.Context) -> Path:
    return ctx.obj["project_root"]


def _config(ctx: click.Context) -> CoreConfig:
    try:
        return load_core_config(_project_root(ctx))
    except ConfigurationError as e:
        print_error(str(e), hint="Fix or remove .devcycle/config.yaml")
        sys.exit(2)


@click.group()
@click.option(
    "--project-root",
    envvar="DEVCYCLE_PROJECT_ROOT",
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
    help="Project directory (default: current directory, env: DEVCYCLE_PROJECT_ROOT)",
)
@click.option(
    "--log-file",
    default=None,
    type=click.Path(),
    help="Path to log file",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose (DEBUG) logging to console",
)
@click.pass_context
def main(
    ctx: click.Context, project_root: Path, log_file: str | None, verbose: bool
) -> None:
    """Orchestration core: locks, project status, epic context and workflows."""
    setup_logging("devcycle", log_file=log_file, verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["project_root"] = project_root.resolve()


# =============================================================================
# Status
# =============================================================================


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print the status payload as JSON")
@click.option("--no-cache", is_flag=True, help="Regenerate instead of reading the cache")
@click.pass_context
def status(ctx: click.Context, as_json: bool, no_cache: bool) -> None:
    """Show branch, changes, recent commits and the story in progress."""
    loader = ProjectStatusLoader(_project_root(ctx), config=_config(ctx))
    project_status = loader.load_project_status(use_cache=not no_cache)
    if as_json:
        click.echo(json.dumps(build_status_payload(project_status), indent=2))
        return
    print_status(loader.format_status_display(project_status), str(loader.cache_file))


@main.command("clear-cache")
@click.pass_context
def clear_cache(ctx: click.Context) -> None:
    """Delete the project status cache."""
    loader = ProjectStatusLoader(_project_root(ctx), config=_config(ctx))
    if loader.clear_cache():
        console.print(f"Removed {loader.cache_file}")
    else:
        console.print("No status cache to remove")


# =============================================================================
# Locks
# =============================================================================


@main.group()
def locks() -> None:
    """Inspect and clean up resource locks."""


def _lock_manager(ctx: click.Context) -> LockManager:
    settings = _config(ctx).locks
    return LockManager(
        _project_root(ctx),
        owner=settings.owner,
        default_ttl_seconds=settings.default_ttl_seconds,
    )


@locks.command("cleanup")
@click.pass_context
def locks_cleanup(ctx: click.Context) -> None:
    """Remove expired and dead-owner locks."""
    removed = _lock_manager(ctx).cleanup_stale_locks()
    console.print(f"Removed {removed} stale lock(s)")


@locks.command("check")
@click.argument("resource")
@click.pass_context
def locks_check(ctx: click.Context, resource: str) -> None:
    """Exit 0 if RESOURCE is unlocked, 1 if it is held."""
    manager = _lock_manager(ctx)
    if not manager.is_locked(resource):
        console.print(f"{resource}: free")
        return
    record = manager.get_lock(resource)
    holder = f"pid {record.pid} ({record.owner})" if record else "unknown holder"
    console.print(f"{resource}: held by {holder}")
    sys.exit(1)


# =============================================================================
# Context
# =============================================================================


@main.command()
@click.argument("progress_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--story-n", type=int, default=None, help="Index of the upcoming story")
@click.option("--files", "files", multiple=True, help="File the next phase will modify")
@click.option("--executor", default=None, help="Executor of the next phase")
def context(
    progress_file: str,
    story_n: int | None,
    files: tuple[str, ...],
    executor: str | None,
) -> None:
    """Print the accumulated context for the next story of an epic."""
    try:
        progress = load_epic_progress(progress_file)
    except (ValueError, OSError) as e:
        print_error(str(e))
        sys.exit(2)
    if story_n is None:
        story_n = len(progress.stories_done)
    text = EpicContextAccumulator(progress).build_accumulated_context(
        progress.epic_id, story_n, list(files), executor
    )
    click.echo(text)
    click.echo(f"# ~{estimate_tokens(text)} tokens", err=True)


# =============================================================================
# Run
# =============================================================================


@main.command()
@click.argument("story")
@click.option(
    "--workflow",
    "workflow_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Workflow definition (default: .devcycle/workflows/development-cycle.yaml)",
)
@click.option(
    "--progress",
    "progress_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Epic progress YAML used to build accumulated context",
)
@click.pass_context
def run(
    ctx: click.Context,
    story: str,
    workflow_path: str | None,
    progress_file: str | None,
) -> None:
    """Run STORY through the workflow."""
    root = _project_root(ctx)
    manager = _lock_manager(ctx)
    lock_resource = f"workflow:{story}"
    try:
        executor = create_workflow_executor(root, _config(ctx), workflow_path)
        progress = load_epic_progress(progress_file) if progress_file else None
    except (DevcycleError, ValueError, OSError) as e:
        print_error(str(e))
        sys.exit(2)

    if not manager.acquire_lock(lock_resource):
        print_error(f"Story {story} is already running", hint="devcycle locks cleanup")
        sys.exit(1)
    try:
        result = executor.run(story, progress=progress)
    finally:
        manager.release_lock(lock_resource)

    print_run_result(result)
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
