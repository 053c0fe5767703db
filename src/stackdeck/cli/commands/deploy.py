"""CLI commands for rolling out StackDeck stacks.

Implements the 'stackdeck deploy' command group: plan a rollout, run it
against the configured cluster, inspect the persisted result, and tear down
the ingress binding.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import click

from stackdeck.config.defaults import DEFAULT_STACK_FILE
from stackdeck.deploy.orchestrator import Orchestrator, build_plan
from stackdeck.deploy.state import (
    get_rollout_result,
    get_state_path,
    record_rollout_result,
)
from stackdeck.lib.errors import ConfigError, DeploymentError, PlanError
from stackdeck.lib.logging_config import get_logger, setup_logging
from stackdeck.models.rollout import RolloutResult, RolloutStatus, TierStatus
from stackdeck.models.stack import StackConfig

logger = get_logger(__name__)

EXIT_UNSUCCESSFUL = 1
EXIT_CONFIG = 2
EXIT_DEPLOYMENT = 3
EXIT_CANCELLED = 130

_STATUS_COLORS = {
    TierStatus.READY: "green",
    TierStatus.FAILED: "red",
    TierStatus.PENDING: "yellow",
    TierStatus.APPLYING: "yellow",
    TierStatus.PROBING: "yellow",
}


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in deploy commands.

    Exit codes:
        2: Configuration or plan error
        3: Deployment/execution error
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_CONFIG)
    except PlanError as e:
        logger.error(f"Plan error: {e}")
        click.secho("Error: Invalid rollout plan", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(EXIT_CONFIG)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_DEPLOYMENT)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_DEPLOYMENT)


@click.group(name="deploy", invoke_without_command=True)
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Roll out StackDeck stacks tier by tier.

    Subcommands:

        plan    Show the rollout order
        run     Deploy the stack and bind its ingress
        status  Show the last rollout result
        destroy Tear down the ingress binding

    Example:

        stackdeck deploy run

        stackdeck deploy run stack.yaml --dry-run
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


stack_argument = click.argument(
    "stack_file",
    type=click.Path(exists=True),
    default=DEFAULT_STACK_FILE,
    required=False,
)
verbose_option = click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
quiet_option = click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)


@deploy.command()
@stack_argument
@verbose_option
@quiet_option
def plan(stack_file: str, verbose: bool, quiet: bool) -> None:
    """Show the order in which tiers will be rolled out.

    No call is made to the cluster.
    """
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack, _ = _load_stack(stack_file)
        rollout_plan = build_plan(stack.tiers)

        if quiet:
            click.echo(" ".join(rollout_plan.names))
            return

        click.echo()
        click.secho(f"Rollout plan for {stack.name}:", bold=True)
        for index, tier in enumerate(rollout_plan, start=1):
            after = f"  (after {', '.join(tier.depends_on)})" if tier.depends_on else ""
            click.echo(f"  {index}. {tier.name}{after}")
        if stack.ingress is not None:
            click.echo(f"  -> ingress {stack.ingress.name}")
        click.echo()


@deploy.command()
@stack_argument
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without executing",
)
@click.option(
    "--fresh",
    is_flag=True,
    help="Ignore the persisted result and re-apply every tier",
)
@verbose_option
@quiet_option
def run(
    stack_file: str,
    dry_run: bool,
    fresh: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Deploy the stack and bind its ingress.

    Tiers already ready in the last persisted rollout, with an unchanged
    specification, are not re-applied. Press Ctrl-C to stop after the
    current readiness check; ready tiers are left in place.
    """
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack, stack_path = _load_stack(stack_file)
        rollout_plan = build_plan(stack.tiers)
        state_path = get_state_path(stack_path)

        if not quiet:
            click.echo()
            click.secho("Rollout Configuration:", bold=True)
            click.echo(f"  Stack:      {stack.name}")
            click.echo(f"  Provider:   {stack.target.provider.value}")
            click.echo(f"  Namespace:  {stack.target.namespace}")
            click.echo(f"  Plan:       {' -> '.join(rollout_plan.names)}")
            if stack.ingress is not None:
                click.echo(f"  Ingress:    {stack.ingress.name}")
            click.echo()

        if dry_run:
            click.secho("[DRY RUN] Would roll out tiers:", fg="yellow")
            for tier in rollout_plan:
                click.echo(f"  {tier.name} ({len(tier.manifests)} manifest(s))")
            click.secho("[DRY RUN] No changes were made", fg="yellow")
            sys.exit(0)

        previous = None if fresh else get_rollout_result(state_path, stack.name)
        orchestrator = Orchestrator.for_stack(stack, previous=previous)
        result = asyncio.run(_run_rollout(orchestrator, stack))
        record_rollout_result(state_path, result)

    if quiet:
        address = result.ingress.address if result.ingress else None
        click.echo(address or result.status.value)
    else:
        _display_result(result)

    if result.status == RolloutStatus.CANCELLED:
        sys.exit(EXIT_CANCELLED)
    if result.status != RolloutStatus.SUCCEEDED:
        sys.exit(EXIT_UNSUCCESSFUL)


@deploy.command()
@stack_argument
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@verbose_option
@quiet_option
def status(stack_file: str, as_json: bool, verbose: bool, quiet: bool) -> None:
    """Show the last persisted rollout result for the stack."""
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack, stack_path = _load_stack(stack_file)
        result = get_rollout_result(get_state_path(stack_path), stack.name)
        if result is None:
            raise ConfigError(
                field="rollout_state",
                message="No rollout record found. Run `stackdeck deploy run` first.",
            )

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    elif quiet:
        click.echo(result.status.value)
    else:
        _display_result(result)


@deploy.command()
@stack_argument
@click.option(
    "--force",
    is_flag=True,
    help="Skip confirmation prompt",
)
@verbose_option
@quiet_option
def destroy(stack_file: str, force: bool, verbose: bool, quiet: bool) -> None:
    """Tear down the ingress binding of the stack.

    Tiers are left running.
    """
    if not quiet:
        setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        stack, stack_path = _load_stack(stack_file)
        state_path = get_state_path(stack_path)
        previous = get_rollout_result(state_path, stack.name)
        if previous is None or previous.ingress is None:
            raise ConfigError(
                field="rollout_state",
                message="No ingress binding recorded for this stack.",
            )

        binding_name = previous.ingress.name
        if not force:
            confirm = click.confirm(
                f"Destroy ingress '{binding_name}'?", default=False
            )
            if not confirm:
                click.secho("Destroy aborted.", fg="yellow")
                sys.exit(0)

        orchestrator = Orchestrator.for_stack(stack, previous=previous)
        asyncio.run(orchestrator.teardown_ingress())
        latest = orchestrator.status()
        if latest is not None:
            record_rollout_result(state_path, latest)

    if quiet:
        click.echo("deleted")
        return

    click.echo()
    click.secho("Ingress Destroyed", fg="green", bold=True)
    click.echo(f"  Ingress:   {binding_name}")
    click.echo()


async def _run_rollout(orchestrator: Orchestrator, stack: StackConfig) -> RolloutResult:
    """Run a rollout, turning Ctrl-C into cooperative cancellation."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(
            signal.SIGINT, orchestrator.cancel, "Interrupted by user"
        )
        handler_installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        # Not available on this platform or outside the main thread
        handler_installed = False

    try:
        return await orchestrator.deploy_stack(stack)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def _load_stack(stack_file: str) -> tuple[StackConfig, Path]:
    from stackdeck.config.loader import StackLoader

    loader = StackLoader()
    stack = loader.load_stack_yaml(stack_file)
    return stack, Path(stack_file).resolve()


def _display_result(result: RolloutResult) -> None:
    """Print a rollout result as a table of tiers."""
    color = "green" if result.status == RolloutStatus.SUCCEEDED else "red"
    headline = {
        RolloutStatus.SUCCEEDED: "Rollout Successful!",
        RolloutStatus.FAILED: "Rollout Failed",
        RolloutStatus.CANCELLED: "Rollout Cancelled",
        RolloutStatus.INGRESS_FAILED: "Ingress Failed",
    }[result.status]

    click.echo()
    click.secho(headline, fg=color, bold=True)
    click.echo(f"  Stack:      {result.stack}")
    click.echo(f"  Rollout:    {result.rollout_id}")
    click.echo(f"  Duration:   {result.duration_seconds:.1f}s")
    click.echo()
    for state in result.tiers:
        label = click.style(
            f"{state.status.value:<8}", fg=_STATUS_COLORS[state.status]
        )
        note = " (unchanged)" if state.skipped else ""
        click.echo(f"  {label} {state.name}{note}")
        if state.error is not None:
            click.echo(f"           {state.error.kind}: {state.error.message}")

    if result.ingress is not None:
        click.echo()
        address = result.ingress.address or "(not assigned)"
        click.echo(f"  Ingress:    {result.ingress.name} -> {address}")
        if result.ingress.last_error:
            click.echo(f"  Last error: {result.ingress.last_error}")

    if result.error is not None and result.error.tier is None:
        click.echo()
        click.echo(f"  {result.error.kind}: {result.error.message}")
    click.echo()
