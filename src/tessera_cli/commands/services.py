"""Lifecycle commands: init, reinit, delete, status, start, stop, restart.

Every command takes an optional component (database, webservice, all) and
the same set of connection, TLS, retry and credential options. Options left
unset fall through to the environment, the persisted database config and
finally the built-in defaults (see config.build_options).

Examples:

    # First run: database, then web service with generated credentials
    tessera-services init --accept-defaults

    # Check both components
    tessera-services status

    # Throw away the database and start over, no questions asked
    tessera-services reinit database --yes
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape

from ..config import BACKENDS, build_options
from ..database import create_driver
from ..errors import TesseraError
from ..orchestrator import Command, Orchestrator
from ..prompts import COMPONENT_CHOICES, Prompter
from ..shared.logging import get_logger
from ..shared.paths import ensure_dirs

console = Console(stderr=True)
logger = get_logger(__name__)


_SERVICE_OPTIONS = [
    # Database
    click.option(
        "--backend",
        "db_backend",
        type=click.Choice(BACKENDS),
        default=None,
        help="Database backend (default: auto-detect)",
    ),
    click.option(
        "--connection-string",
        default=None,
        help="Use an existing database instead of managing one (postgresql://...)",
    ),
    click.option("--db-host", default=None, help="Database host"),
    click.option("--db-port", type=int, default=None, help="Database port"),
    click.option("--db-name", default=None, help="Database name"),
    click.option("--db-user", default=None, help="Database user"),
    click.option("--db-pool", type=int, default=None, help="Connection pool size"),
    click.option("--cluster-name", default=None, help="System cluster name"),
    click.option("--cluster-version", default=None, help="System cluster version"),
    # Web service
    click.option("--host", "service_host", default=None, help="Web service host"),
    click.option("--port", "service_port", type=int, default=None, help="Web service port"),
    click.option("--service-name", default=None, help="Web service name"),
    click.option(
        "--ssl-key", type=click.Path(path_type=Path), default=None, help="TLS private key path"
    ),
    click.option(
        "--ssl-cert", type=click.Path(path_type=Path), default=None, help="TLS certificate path"
    ),
    click.option(
        "--no-ssl-pin",
        is_flag=True,
        help="Validate the certificate against the system trust store instead of pinning it",
    ),
    click.option(
        "--ssl-skip-verify", is_flag=True, help="Disable certificate verification entirely"
    ),
    click.option("--retry-max", type=int, default=None, help="Health check attempts"),
    click.option(
        "--retry-delay", type=float, default=None, help="Seconds between health check attempts"
    ),
    # Credentials and bootstrap
    click.option("--admin-user", default=None, help="Admin username for web service init"),
    click.option("--admin-password", default=None, help="Admin password (default: generated)"),
    click.option("--workspace", default=None, help="Workspace created on web service init"),
    click.option(
        "--no-register", is_flag=True, help="Do not register the data service with the console"
    ),
    # Behavior
    click.option(
        "--accept-defaults",
        "-d",
        is_flag=True,
        help="Never prompt for choices; use defaults and generated credentials",
    ),
    click.option(
        "--yes", "-y", "assume_yes", is_flag=True, help="Confirm destructive operations"
    ),
]

# Boolean flags that map onto an option with the opposite sense
_NEGATED_FLAGS = {"no_ssl_pin": "ssl_pin", "no_register": "register_data_service"}


def service_options(func):
    """Attach the shared lifecycle options to a command."""
    for option in reversed(_SERVICE_OPTIONS):
        func = option(func)
    return func


def component_argument(func):
    return click.argument(
        "component", required=False, type=click.Choice(COMPONENT_CHOICES)
    )(func)


def explicit_options(params: dict[str, Any]) -> dict[str, Any]:
    """Turn parsed click parameters into explicit ServiceOptions overrides.

    Unset values (None, or a flag left off) are dropped so they do not
    shadow the environment or the persisted config.
    """
    explicit: dict[str, Any] = {}
    for name, value in params.items():
        if name in _NEGATED_FLAGS:
            if value:
                explicit[_NEGATED_FLAGS[name]] = False
        elif isinstance(value, bool):
            if value:
                explicit[name] = True
        elif value is not None:
            explicit[name] = value
    return explicit


def print_error(error: TesseraError) -> None:
    """Render an error for the operator."""
    console.print(f"[red]Error:[/red] {escape(error.message)}", soft_wrap=True)
    if error.hint:
        console.print(f"[dim]{escape(error.hint)}[/dim]", soft_wrap=True)


def _options_from(ctx: click.Context, params: dict[str, Any]):
    options = build_options(explicit_options(params), base_dir=ctx.obj.get("home"))
    ensure_dirs(options.base_dir)
    return options


def _run(ctx: click.Context, command: Command, component: str | None, params: dict) -> None:
    try:
        options = _options_from(ctx, params)
        ok = Orchestrator(options, prompter=Prompter()).execute(command, component)
    except TesseraError as e:
        logger.debug("command_failed", command=command.value, error=type(e).__name__)
        print_error(e)
        sys.exit(1)
    except KeyboardInterrupt:
        raise click.Abort() from None
    if not ok:
        sys.exit(1)


@click.command()
@component_argument
@service_options
@click.pass_context
def init(ctx: click.Context, component: str | None, **params: Any) -> None:
    """Initialize the database and/or web service."""
    _run(ctx, Command.INIT, component, params)


@click.command()
@component_argument
@service_options
@click.pass_context
def reinit(ctx: click.Context, component: str | None, **params: Any) -> None:
    """Delete and initialize again (destroys data)."""
    _run(ctx, Command.REINIT, component, params)


@click.command()
@component_argument
@service_options
@click.pass_context
def delete(ctx: click.Context, component: str | None, **params: Any) -> None:
    """Stop and delete all persisted state (destroys data)."""
    _run(ctx, Command.DELETE, component, params)


@click.command()
@component_argument
@service_options
@click.pass_context
def status(ctx: click.Context, component: str | None, **params: Any) -> None:
    """Show component status (default: all)."""
    _run(ctx, Command.STATUS, component, params)


@click.command()
@component_argument
@service_options
@click.pass_context
def start(ctx: click.Context, component: str | None, **params: Any) -> None:
    """Start an initialized component."""
    _run(ctx, Command.START, component, params)


@click.command()
@component_argument
@service_options
@click.pass_context
def stop(ctx: click.Context, component: str | None, **params: Any) -> None:
    """Stop a running component."""
    _run(ctx, Command.STOP, component, params)


@click.command()
@component_argument
@service_options
@click.pass_context
def restart(ctx: click.Context, component: str | None, **params: Any) -> None:
    """Stop, then start again."""
    _run(ctx, Command.RESTART, component, params)


@click.command(
    "run-command",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("argv", nargs=-1, required=True, type=click.UNPROCESSED)
@service_options
@click.pass_context
def run_command(ctx: click.Context, argv: tuple[str, ...], **params: Any) -> None:
    """Run a command with the database connection in its environment.

    \b
    Example:
        tessera-services run-command -- psql -c 'select 1'
    """
    try:
        options = _options_from(ctx, params)
        driver = create_driver(options)
        returncode = driver.run_command(list(argv))
    except TesseraError as e:
        print_error(e)
        sys.exit(1)
    sys.exit(returncode)


SERVICE_COMMANDS = [init, reinit, delete, status, start, stop, restart, run_command]
