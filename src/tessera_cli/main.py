"""CLI main entry point."""

from pathlib import Path

import click

from .commands import SERVICE_COMMANDS
from .shared.logging import configure_logging


@click.group(no_args_is_help=False)
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="State directory (default: $TESSERA_HOME or ~/.tessera)",
)
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Write JSON logs here")
@click.pass_context
def cli(ctx: click.Context, home: Path | None, verbose: int, log_file: str | None) -> None:
    """Manage the tessera database and web service on this host."""
    ctx.ensure_object(dict)
    ctx.obj["home"] = home
    ctx.obj["verbose"] = verbose
    configure_logging(verbose, log_file=log_file)


for _command in SERVICE_COMMANDS:
    cli.add_command(_command)


@cli.command()
def version() -> None:
    """Show the CLI version."""
    from . import __version__

    click.echo(f"tessera-services {__version__}")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
