"""CLI commands for AWS deployments.

Implements the 'stackdeck aws' command group: init and update provision the
project, armageddon tears every recorded resource down, and list shows what
the deployment descriptor holds.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

import click

from stackdeck.config.loader import ProjectLoader
from stackdeck.deploy.control_plane import create_control_plane
from stackdeck.deploy.handlers import create_handlers
from stackdeck.deploy.plans import (
    build_init_plan,
    build_update_plan,
    create_environment,
    identity_for,
)
from stackdeck.deploy.poller import ReadinessPoller
from stackdeck.deploy.reconciler import ResourceReconciler
from stackdeck.deploy.scheduler import RunResult, Scheduler, TaskState
from stackdeck.deploy.state import StateStore
from stackdeck.deploy.teardown import build_teardown_plan
from stackdeck.lib.errors import ConfigError, DeploymentError
from stackdeck.lib.logging_config import get_logger, setup_logging
from stackdeck.models.project import ProjectConfig

logger = get_logger(__name__)

FIRST_CONFIRMATION = "armageddon"
SECOND_CONFIRMATION = "delete everything"

F = TypeVar("F", bound=Callable[..., Any])


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in deployment commands.

    Exit codes:
        2: Configuration error
        3: Deployment/execution error
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


def _load(project_dir: str) -> tuple[Path, ProjectConfig, StateStore]:
    loader = ProjectLoader()
    root = loader.find_project_root(Path(project_dir))
    project = loader.load_project(root)
    return root, project, StateStore(root / project.state_path)


async def _provision(
    root: Path,
    project: ProjectConfig,
    store: StateStore,
    update: bool,
    max_concurrency: int | None,
) -> RunResult:
    topology = ProjectLoader().load_topology(root, project)
    identity = identity_for(project, store.load(), require_existing=update)
    # Persist the identity first so a resumed run reuses the same names
    await store.merge_and_persist(project=identity)

    async with create_control_plane(project.aws) as control_plane:
        env = create_environment(
            project, topology, root, store, control_plane, identity
        )
        graph = build_update_plan(env) if update else build_init_plan(env)
        return await Scheduler(max_concurrency=max_concurrency).run(graph)


async def _teardown(
    project: ProjectConfig, store: StateStore, max_concurrency: int | None
) -> RunResult:
    descriptor = store.load()
    async with create_control_plane(project.aws) as control_plane:
        poller = ReadinessPoller(
            interval=project.polling.interval,
            max_attempts=project.polling.max_attempts,
        )
        reconciler = ResourceReconciler(
            store,
            create_handlers(control_plane, poller),
            max_retries=project.max_retries,
            retry_backoff=project.retry_backoff,
        )
        graph = build_teardown_plan(descriptor, reconciler)
        return await Scheduler(max_concurrency=max_concurrency).run(graph)


def _display_run_result(result: RunResult, operation: str, quiet: bool) -> None:
    """Print failed and skipped tasks, then raise if the run did not succeed.

    Raises:
        DeploymentError: If any task failed
    """
    if not quiet:
        click.echo()
        click.secho(f"{operation.capitalize()} Summary:", bold=True)
        click.echo(f"  Succeeded: {len(result.succeeded)}")
        click.echo(f"  Failed:    {len(result.failed)}")
        click.echo(f"  Skipped:   {len(result.skipped)}")
        for task_id, outcome in result.outcomes.items():
            if outcome.state is TaskState.FAILED:
                click.secho(f"  x {task_id}: {outcome.error}", fg="red")
            elif outcome.state is TaskState.SKIPPED:
                click.secho(
                    f"  - {task_id} (skipped, {outcome.skipped_because} failed)",
                    fg="yellow",
                )
        click.echo()

    if not result.ok:
        raise DeploymentError(
            operation=operation,
            message=(
                f"{len(result.failed)} task(s) failed. Fix the cause and re-run "
                "the command; completed resources are kept and reused."
            ),
        )


def _common_options(func: F) -> F:
    """Options shared by every aws subcommand."""
    for option in reversed(
        [
            click.option(
                "--project-dir",
                type=click.Path(exists=True, file_okay=False),
                default=".",
                help="Project directory (searched upwards for stackdeck.yaml)",
            ),
            click.option(
                "--verbose", "-v", is_flag=True, help="Enable verbose debug logging"
            ),
            click.option(
                "--quiet", "-q", is_flag=True, help="Suppress progress output"
            ),
        ]
    ):
        func = option(func)
    return func


@click.group(name="aws", invoke_without_command=True)
@click.pass_context
def aws(ctx: click.Context) -> None:
    """Provision and tear down the project's AWS deployment.

    Subcommands:

        init        Provision every resource
        update      Republish images and register new task revisions
        armageddon  Delete every recorded resource
        list        Show the recorded resources

    Example:

        stackdeck aws init

        stackdeck aws armageddon --force
    """
    ctx.ensure_object(dict)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _provision_command(
    update: bool,
    project_dir: str,
    max_concurrency: int | None,
    verbose: bool,
    quiet: bool,
) -> None:
    operation = "update" if update else "init"
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        root, project, store = _load(project_dir)
        if not quiet:
            click.echo()
            click.secho(f"{operation.capitalize()} Configuration:", bold=True)
            click.echo(f"  Project:   {project.name}")
            click.echo(f"  Profile:   {project.aws.profile}")
            click.echo(f"  Region:    {project.aws.region or '(profile default)'}")
            click.echo(f"  Domain:    {project.aws.domain}")
            click.echo(f"  State:     {store.path}")
            click.echo()

        result = asyncio.run(
            _provision(root, project, store, update, max_concurrency)
        )
        _display_run_result(result, operation, quiet)

        descriptor = store.load()
        if quiet:
            click.echo(descriptor.site_url or "")
            return
        click.secho("Deployment Successful!", fg="green", bold=True)
        click.echo(f"  Site:      {descriptor.site_url}")
        click.echo(f"  API:       {descriptor.api_url}")
        click.echo()


@aws.command()
@_common_options
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Upper bound on concurrently running tasks",
)
def init(
    project_dir: str, verbose: bool, quiet: bool, max_concurrency: int | None
) -> None:
    """Provision the project's deployment.

    Safe to re-run: resources already recorded are reused, so a failed run
    resumes at the first resource that was not completed.
    """
    _provision_command(False, project_dir, max_concurrency, verbose, quiet)


@aws.command()
@_common_options
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Upper bound on concurrently running tasks",
)
def update(
    project_dir: str, verbose: bool, quiet: bool, max_concurrency: int | None
) -> None:
    """Republish service images and register new task definition revisions."""
    _provision_command(True, project_dir, max_concurrency, verbose, quiet)


@aws.command()
@_common_options
@click.option("--force", is_flag=True, help="Skip the confirmation prompts")
def armageddon(project_dir: str, verbose: bool, quiet: bool, force: bool) -> None:
    """Delete every resource recorded for the project.

    Asks for two confirmation phrases before anything is deleted.
    """
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        _, project, store = _load(project_dir)
        descriptor = store.load()
        if not descriptor.resources:
            click.echo("Nothing to tear down.")
            return

        if not force:
            click.secho(
                f"This deletes all {len(descriptor.resources)} recorded resources "
                f"of '{project.name}', including both databases.",
                fg="red",
                bold=True,
            )
            for phrase in (FIRST_CONFIRMATION, SECOND_CONFIRMATION):
                answer = click.prompt(f"Type '{phrase}' to continue", default="")
                if answer.strip() != phrase:
                    click.secho("Teardown aborted.", fg="yellow")
                    return

        result = asyncio.run(_teardown(project, store, None))
        _display_run_result(result, "teardown", quiet)

        if quiet:
            click.echo("deleted")
            return
        click.secho("Teardown Complete", fg="green", bold=True)
        click.echo(f"  Deleted:   {len(result.succeeded)} resources")
        click.echo()


@aws.command(name="list")
@_common_options
def list_resources(project_dir: str, verbose: bool, quiet: bool) -> None:
    """Show the resources recorded in the deployment descriptor."""
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        _, _, store = _load(project_dir)
        descriptor = store.load()

        if quiet:
            for key in sorted(descriptor.resources):
                click.echo(key)
            return

        click.echo()
        click.secho("Deployment", bold=True)
        if descriptor.project is not None:
            click.echo(f"  Project:   {descriptor.project.name}")
            click.echo(f"  AWS name:  {descriptor.project.aws_name}")
            click.echo(f"  Cluster:   {descriptor.project.cluster_name}")
            click.echo(f"  Domain:    {descriptor.project.domain}")
        if descriptor.site_url:
            click.echo(f"  Site:      {descriptor.site_url}")
        if descriptor.api_url:
            click.echo(f"  API:       {descriptor.api_url}")
        click.echo(f"  Revision:  {descriptor.revision}")
        click.echo()

        if not descriptor.resources:
            click.echo("No resources recorded.")
            return
        click.secho("Resources", bold=True)
        for key in sorted(descriptor.resources):
            record = descriptor.resources[key]
            click.echo(f"  {key:<40} {record.status.value:<10} {record.external_id}")
        click.echo()
