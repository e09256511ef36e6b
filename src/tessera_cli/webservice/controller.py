"""Web service lifecycle.

Start, stop, restart, delete and first-time init of the tessera-server
daemon. Status comes from the PID file (see daemon.read_status); readiness
comes from polling the version endpoint (see health.HealthPoller).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import click

from ..client import TesseraClient
from ..errors import BootstrapError, StateError, TrustError
from ..formatters import print_credentials
from ..shared.logging import get_logger
from . import daemon
from .bootstrap import (
    BootstrapProtocol,
    WebServiceCredentials,
    account_url,
    format_reconnect_command,
    generate_credentials,
)
from .console import register_data_service
from .daemon import WebServiceState, WebServiceStatus
from .health import HealthCheckResult, HealthPoller, HealthState, check_health
from .tls import generate_tls_material, remove_tls_material, tls_generation_required

if TYPE_CHECKING:
    from ..config import ServiceOptions
    from ..prompts import Prompter

logger = get_logger(__name__)

ClientFactory = Callable[["ServiceOptions"], TesseraClient]


class WebServiceController:
    """Lifecycle of the web service daemon."""

    def __init__(
        self,
        options: ServiceOptions,
        prompter: Prompter | None = None,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize controller.

        Args:
            options: Effective service options.
            prompter: Used for credentials unless defaults are accepted.
            client_factory: Builds the HTTPS client for health and bootstrap
                (default: TesseraClient.from_options).
            sleep: Blocking sleep used between health checks.
        """
        self.options = options
        self.prompter = prompter
        self.client_factory = client_factory or TesseraClient.from_options
        self.sleep = sleep

    def status(self) -> WebServiceState:
        return daemon.read_status(self.options.pid_file)

    def server_command(self) -> list[str]:
        o = self.options
        return [
            daemon.check_server_binary(o.server_bin),
            "serve",
            "--host",
            o.service_host,
            "--port",
            str(o.service_port),
            "--ssl-key",
            str(o.ssl_key),
            "--ssl-cert",
            str(o.ssl_cert),
            "--database-config",
            str(o.db_config_file),
        ]

    def check_health(self, expect_authenticated: bool = True) -> HealthCheckResult:
        try:
            with self.client_factory(self.options) as client:
                return check_health(client, self.options.service_name, expect_authenticated)
        except TrustError as e:
            return HealthCheckResult(HealthState.ERROR, message=f"{e.message}. {e.hint}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, expect_authenticated: bool = True) -> bool:
        """Launch the daemon and wait until it is online.

        Args:
            expect_authenticated: True when credentials already exist, so a
                401 from the version endpoint means online. False during
                first-time init.

        Returns:
            True once the service reports online.

        Raises:
            StateError: Already running, or TLS key missing (not initialized).
            PrerequisiteError: Server executable not found.
        """
        state = self.status()
        if state.status == WebServiceStatus.RUNNING:
            raise StateError(f"Web service is already running (PID {state.pid})")

        command = self.server_command()

        if state.status == WebServiceStatus.INACTIVE:
            click.echo(f"{state.message}; removing stale PID file.")
            daemon.remove_stale_pid_file(self.options.pid_file)

        if not self.options.ssl_key.exists():
            raise StateError(
                f"Web service is not initialized: no TLS key at {self.options.ssl_key}",
                hint="Run: tessera-services init webservice",
            )

        pid = daemon.launch(command, self.options.pid_file, self.options.server_log_file)
        click.echo(f"Starting web service (PID {pid})...")

        def on_attempt(attempt: int, max_attempts: int, result: HealthCheckResult) -> None:
            if result.state == HealthState.OFFLINE:
                click.echo(f"  Attempt {attempt}/{max_attempts}: {result.state.value}")

        poller = HealthPoller(
            max_attempts=self.options.retry_max,
            interval_seconds=self.options.retry_delay,
            sleep=self.sleep,
        )
        result = poller.wait_until_online(
            lambda: self.check_health(expect_authenticated), on_attempt
        )

        if result.state == HealthState.ONLINE:
            version = f" (version {result.version})" if result.version else ""
            click.echo(f"✓ Web service online at {self.options.service_url}{version}")
            logger.info("webservice_online", attempts=result.attempts, version=result.version)
            return True

        if result.state == HealthState.ERROR:
            click.echo(f"✗ Web service error: {result.message}", err=True)
        else:
            click.echo(
                f"✗ Web service did not come online after {result.attempts} attempts.",
                err=True,
            )
        click.echo(f"  Check the log: {self.options.server_log_file}", err=True)
        logger.warning("webservice_start_failed", state=result.state.value)
        return False

    def stop(self) -> None:
        """Stop the daemon. Already stopped is not an error."""
        state = self.status()
        if state.status == WebServiceStatus.RUNNING:
            daemon.terminate(state.pid, self.options.pid_file, sleep=self.sleep)
            click.echo(f"✓ Web service stopped (was PID {state.pid})")
        elif state.status == WebServiceStatus.INACTIVE:
            daemon.remove_stale_pid_file(self.options.pid_file)
            click.echo(f"{state.message}; removed stale PID file.")
        else:
            click.echo("Web service is already stopped.")

    def restart(self) -> bool:
        self.stop()
        return self.start()

    def delete(self) -> None:
        """Stop, then remove TLS material when data deletion is requested."""
        self.stop()
        if not self.options.delete_data:
            return
        for path in remove_tls_material(self.options.ssl_key, self.options.ssl_cert):
            click.echo(f"✓ Removed {path}")

    def _collect_credentials(self) -> WebServiceCredentials:
        o = self.options
        if o.accept_defaults or o.admin_password or self.prompter is None:
            return generate_credentials(o.admin_user, o.admin_password)
        return self.prompter.ask_credentials(o.admin_user)

    def _rollback(self, generated_tls: bool) -> None:
        self.stop()
        if generated_tls:
            remove_tls_material(self.options.ssl_key, self.options.ssl_cert)
            click.echo("Removed the TLS material generated by this init.")

    def init(self) -> bool:
        """First-time initialization: TLS, start, bootstrap credentials.

        Any failure after the TLS material was generated rolls back: the
        daemon is stopped (removing its PID file) and the generated key and
        certificate are deleted, so the next init starts clean.

        Returns:
            True on success, False if the service did not come online.

        Raises:
            StateError: The web service is already running.
            BootstrapError: A bootstrap stage failed (after rollback).
        """
        state = self.status()
        if state.status == WebServiceStatus.RUNNING:
            raise StateError(
                f"Web service is already running (PID {state.pid})",
                hint="Use restart, or reinit to start over.",
            )

        credentials = self._collect_credentials()

        generated_tls = False
        if tls_generation_required(self.options):
            generate_tls_material(
                self.options.ssl_key, self.options.ssl_cert, self.options.service_host
            )
            generated_tls = True
            click.echo(f"✓ Generated TLS key and certificate in {self.options.ssl_cert.parent}")

        if not self.start(expect_authenticated=False):
            self._rollback(generated_tls)
            return False

        try:
            with self.client_factory(self.options) as client:
                credentials = BootstrapProtocol(client, self.options.workspace).run(credentials)
        except (BootstrapError, TrustError) as e:
            click.echo(f"✗ Bootstrap failed: {e.message}", err=True)
            self._rollback(generated_tls)
            raise

        print_credentials(
            credentials,
            self.options,
            format_reconnect_command(self.options, credentials.token),
            account_url(self.options),
        )
        register_data_service(self.options, credentials.token)
        return True
