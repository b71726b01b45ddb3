"""
Command-line interface for composeorch

Brings compose environments up and down outside a test runner, inspects
service status and logs, and wraps arbitrary commands in a throwaway
environment.
"""

import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from . import __version__
from .cleanup import CleanupCoordinator
from .compose import ComposeService
from .config import ComposeOrchConfig, load_config
from .exceptions import ComposeOrchError
from .lifecycle import LifecycleCoordinator, ScopeRequest, WaitSpec
from .logging_config import SubprocessLogHandler, setup_logging
from .models import ServiceStatus, WaitConfig
from .process import NOT_FOUND_EXIT_CODE, ProcessRunner
from .readiness import ReadinessWaiter

logger = logging.getLogger(__name__)


def _build_compose_service(config: ComposeOrchConfig) -> ComposeService:
    runner = ProcessRunner(
        default_timeout=config.process_timeout,
        log_handler=SubprocessLogHandler("compose", config.log_dir),
    )
    return ComposeService.from_config(config, runner=runner)


def _build_coordinator(config: ComposeOrchConfig) -> LifecycleCoordinator:
    return LifecycleCoordinator.from_config(config)


def _wait_groups(healthy: Tuple[str, ...], running: Tuple[str, ...]):
    groups = []
    if healthy:
        groups.append(WaitSpec(services=list(healthy), target_status=ServiceStatus.HEALTHY))
    if running:
        groups.append(WaitSpec(services=list(running), target_status=ServiceStatus.RUNNING))
    return groups


def _scope_options(func):
    """Options shared by commands that enter a scope."""
    options = [
        click.option("--stack", "-s", required=True, help="Stack name"),
        click.option(
            "--file",
            "-f",
            "compose_files",
            multiple=True,
            required=True,
            type=click.Path(exists=True, dir_okay=False),
            help="Compose file (repeatable, order preserved)",
        ),
        click.option(
            "--env-file",
            "env_files",
            multiple=True,
            type=click.Path(exists=True, dir_okay=False),
            help="Env file passed to compose (repeatable)",
        ),
        click.option("--healthy", multiple=True, help="Service that must become healthy"),
        click.option("--running", multiple=True, help="Service that must be running"),
        click.option("--timeout", type=float, default=None, help="Readiness timeout in seconds"),
        click.option(
            "--poll-interval", type=float, default=None, help="Readiness poll interval in seconds"
        ),
        click.option(
            "--state-file",
            type=click.Path(dir_okay=False),
            default=None,
            help="Where to publish the state file",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _scope_request(
    stack: str,
    compose_files: Tuple[str, ...],
    env_files: Tuple[str, ...],
    healthy: Tuple[str, ...],
    running: Tuple[str, ...],
    timeout: Optional[float],
    poll_interval: Optional[float],
    state_file: Optional[str],
) -> ScopeRequest:
    return ScopeRequest(
        stack_name=stack,
        compose_files=list(compose_files),
        env_files=list(env_files),
        wait_groups=_wait_groups(healthy, running),
        timeout=timeout,
        poll_interval=poll_interval,
        state_file=state_file,
    )


@click.group()
@click.option(
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--log-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory for log files",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Optional[Path],
    log_level: Optional[str],
    verbose: bool,
    log_dir: Optional[Path],
) -> None:
    """
    composeorch: ephemeral compose environments for tests

    Start isolated multi-container environments, wait for them to become
    ready, publish their ports to a state file and tear them down again.
    """
    config = load_config(
        config_file=str(config_file) if config_file else None,
        cli_overrides={
            "log_level": log_level.upper() if log_level else None,
            "verbose": verbose or None,
            "log_dir": str(log_dir) if log_dir else None,
        },
    )

    setup_logging(
        log_dir=config.log_dir,
        verbose=config.verbose,
        log_level=config.log_level,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@_scope_options
@click.pass_context
def up(ctx: click.Context, stack, compose_files, env_files, healthy, running, timeout,
       poll_interval, state_file) -> None:
    """Start an environment and leave it running."""
    config = ctx.obj["config"]
    request = _scope_request(
        stack, compose_files, env_files, healthy, running, timeout, poll_interval, state_file
    )

    try:
        coordinator = _build_coordinator(config)
        scope = coordinator.enter_scope(request)
    except ComposeOrchError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ {scope.compose_state.get_summary()}")
    click.echo(f"Project: {scope.project_name}")
    click.echo(f"State file: {scope.state_file}")


@cli.command()
@click.argument("project")
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="State file to delete",
)
@click.option("--strict", is_flag=True, help="Exit non-zero if any cleanup step failed")
@click.pass_context
def down(ctx: click.Context, project: str, state_file: Optional[str], strict: bool) -> None:
    """Remove everything belonging to PROJECT."""
    config = ctx.obj["config"]
    compose_service = _build_compose_service(config)
    cleanup = CleanupCoordinator(
        compose_service,
        runner=compose_service.runner,
        container_runtime=config.container_runtime,
        timeout=config.query_timeout,
        remove_state_files=config.remove_state_files,
    )

    report = cleanup.cleanup(project, state_file)
    for warning in report.warnings:
        click.echo(f"⚠️  {warning}", err=True)
    click.echo(report.get_summary())

    if strict and not report.success:
        sys.exit(1)


@cli.command()
@click.argument("project")
@click.argument("services", nargs=-1, required=True)
@click.pass_context
def status(ctx: click.Context, project: str, services: Tuple[str, ...]) -> None:
    """Show the status of SERVICES in PROJECT."""
    config = ctx.obj["config"]
    compose_service = _build_compose_service(config)

    try:
        for service in services:
            service_status = compose_service.query_status(project, service)
            click.echo(f"{service}: {service_status.name}")
    except ComposeOrchError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("project")
@click.option("--healthy", multiple=True, help="Service that must become healthy")
@click.option("--running", multiple=True, help="Service that must be running")
@click.option("--timeout", type=float, default=None, help="Timeout in seconds")
@click.option("--poll-interval", type=float, default=None, help="Poll interval in seconds")
@click.pass_context
def wait(ctx: click.Context, project: str, healthy: Tuple[str, ...], running: Tuple[str, ...],
         timeout: Optional[float], poll_interval: Optional[float]) -> None:
    """Block until services in PROJECT are ready."""
    config = ctx.obj["config"]
    if not healthy and not running:
        raise click.UsageError("Specify at least one --healthy or --running service")

    waiter = ReadinessWaiter(_build_compose_service(config))
    try:
        for group in _wait_groups(healthy, running):
            waiter.wait(
                WaitConfig(
                    project_name=project,
                    services=tuple(group.services),
                    timeout=timeout or config.wait_timeout,
                    poll_interval=poll_interval or config.poll_interval,
                    target_status=group.target_status,
                )
            )
    except ComposeOrchError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Services ready in {project}")


@cli.command()
@click.argument("project")
@click.argument("services", nargs=-1)
@click.option("--tail", type=int, default=None, help="Number of lines per container")
@click.pass_context
def logs(ctx: click.Context, project: str, services: Tuple[str, ...], tail: Optional[int]) -> None:
    """Print container logs for PROJECT."""
    config = ctx.obj["config"]
    compose_service = _build_compose_service(config)

    try:
        output = compose_service.capture_logs(project, services, tail=tail)
    except ComposeOrchError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(output, nl=False)


@cli.command()
@_scope_options
@click.argument("command", nargs=-1, required=True)
@click.pass_context
def run(ctx: click.Context, stack, compose_files, env_files, healthy, running, timeout,
        poll_interval, state_file, command: Tuple[str, ...]) -> None:
    """Run COMMAND against a fresh environment, then tear it down.

    The state file path and project name are exported as COMPOSE_STATE_FILE
    and COMPOSE_PROJECT_NAME. Exits with COMMAND's exit code.
    """
    config = ctx.obj["config"]
    request = _scope_request(
        stack, compose_files, env_files, healthy, running, timeout, poll_interval, state_file
    )

    try:
        coordinator = _build_coordinator(config)
        scope = coordinator.enter_scope(request)
    except ComposeOrchError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    try:
        env = dict(os.environ)
        env.update(scope.as_environment())
        logger.info(f"Running {' '.join(command)} against {scope.project_name}")
        try:
            exit_code = subprocess.run(list(command), env=env).returncode
        except FileNotFoundError as e:
            click.echo(f"❌ {e}", err=True)
            exit_code = NOT_FOUND_EXIT_CODE
    finally:
        report = coordinator.exit_scope(scope)
        if report is not None:
            for warning in report.warnings:
                click.echo(f"⚠️  {warning}", err=True)

    sys.exit(exit_code)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
