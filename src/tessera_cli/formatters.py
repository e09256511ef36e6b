"""CLI output formatting helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from .config import ServiceOptions
    from .webservice.bootstrap import WebServiceCredentials


def print_status(component: str, status: str, detail: str) -> None:
    """Print one status line.

    Args:
        component: Component name (database, webservice)
        status: Status value
        detail: Human-readable description
    """
    marker = "✓" if status == "running" else "✗"
    click.echo(f"{marker} {component:<11} {status:<12} {detail}")


def print_credentials(
    credentials: WebServiceCredentials,
    options: ServiceOptions,
    reconnect_command: str | None,
    account_url: str,
) -> None:
    """Print the bootstrapped credentials and how to use them.

    Nothing here is written to disk; the operator has to store it.
    """
    click.echo("\n" + "=" * 60)
    click.echo("✓ Web service initialized")
    click.echo(f"\n  URL:       {options.api_url}")
    click.echo(f"  Workspace: {options.workspace}")
    click.echo(f"  Username:  {credentials.username}")
    click.echo(f"  Password:  {credentials.password}")
    if credentials.token:
        click.echo(f"  API token: {credentials.token}")
    if reconnect_command:
        click.echo("\n  Connect the console:")
        click.echo(f"    {reconnect_command}")
    click.echo(f"\n  Account:   {account_url}")
    click.echo("\n  Store these credentials now; they are not saved anywhere.")
    click.echo("=" * 60 + "\n")
