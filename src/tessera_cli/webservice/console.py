"""Console tool call-out.

After a successful bootstrap the new connection is registered with the
`tessera` console tool as its default data service. The console tool is
external; failures here are warnings, never errors.
"""

from __future__ import annotations

import shutil
import subprocess
from typing import TYPE_CHECKING

import click

from ..shared.logging import get_logger
from .bootstrap import tls_flags

if TYPE_CHECKING:
    from ..config import ServiceOptions

logger = get_logger(__name__)

DATA_SERVICE_NAME = "default"


def data_service_command(options: ServiceOptions, token: str) -> list[str]:
    return [
        options.console_bin,
        "data-service",
        "add",
        "--name",
        DATA_SERVICE_NAME,
        "--url",
        options.api_url,
        "--token",
        token,
        *tls_flags(options),
        "--default",
    ]


def register_data_service(options: ServiceOptions, token: str) -> bool:
    """Persist the connection as the console's default data service.

    Returns:
        True if the console tool accepted the registration.
    """
    if not options.register_data_service:
        return False

    if shutil.which(options.console_bin) is None:
        click.echo(
            f"⚠ {options.console_bin} not found; skipping data service registration."
        )
        return False

    try:
        result = subprocess.run(
            data_service_command(options, token),
            capture_output=True,
            text=True,
            timeout=30,
        )
    except subprocess.TimeoutExpired:
        click.echo("⚠ Data service registration timed out.")
        return False

    if result.returncode != 0:
        click.echo(f"⚠ Data service registration failed: {result.stderr.strip()}")
        return False

    logger.info("data_service_registered", name=DATA_SERVICE_NAME)
    click.echo(f"✓ Registered '{DATA_SERVICE_NAME}' data service with {options.console_bin}")
    return True
