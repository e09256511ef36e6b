"""Database driver contract and shared lifecycle behavior.

Every backend (local cluster, system cluster, standalone) implements the same
capability set. The orchestrator depends only on DatabaseDriver; the concrete
variant is chosen once in prerequisites.create_driver().
"""

from __future__ import annotations

import os
import secrets
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import click

from ..shared.logging import get_logger
from .store import ConfigStore, DatabaseProfile, PersistedDatabaseConfig

if TYPE_CHECKING:
    from ..config import ServiceOptions

logger = get_logger(__name__)

# Last log line written by postgres when the data files predate the binaries
INCOMPATIBLE_VERSION_MARKER = "database files are incompatible with server"

LOG_TAIL_LINES = 10


class DatabaseStatus(Enum):
    """Observed state of the database component."""

    RUNNING = "running"  # Live, signal-reachable engine
    INACTIVE = "inactive"  # Files exist, no live engine
    NOT_FOUND = "not_found"  # No data directory / cluster
    NEEDS_INIT = "needs_init"  # Storage exists, roles/config missing


def generate_password() -> str:
    """Generate a random database password."""
    return secrets.token_urlsafe(24)


def run_cmd(
    cmd: Sequence[str],
    *,
    env: dict[str, str] | None = None,
    timeout: float = 60.0,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess:
    """Run a command with optional environment overrides, capturing output."""
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    logger.debug("run_cmd", cmd=" ".join(str(c) for c in cmd))
    return subprocess.run(
        [str(c) for c in cmd],
        capture_output=True,
        text=True,
        timeout=timeout,
        env=full_env,
        cwd=cwd,
    )


def tail_log(path: Path | None, lines: int = LOG_TAIL_LINES) -> list[str]:
    """Return the last non-empty lines of a log file (empty if unreadable)."""
    if path is None or not path.exists():
        return []
    try:
        content = path.read_text(errors="replace").splitlines()
    except OSError:
        return []
    return [line for line in content if line.strip()][-lines:]


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def role_sql(profile: DatabaseProfile) -> str:
    """SQL creating (or updating) the login role of a profile."""
    role = quote_ident(profile.username)
    return (
        "DO $$BEGIN "
        f"IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = {quote_literal(profile.username)}) "
        f"THEN CREATE ROLE {role} LOGIN; END IF; END$$; "
        f"ALTER ROLE {role} WITH LOGIN PASSWORD {quote_literal(profile.password)};"
    )


def database_exists_sql(profile: DatabaseProfile) -> str:
    return f"SELECT 1 FROM pg_database WHERE datname = {quote_literal(profile.database)}"


def create_database_sql(profile: DatabaseProfile) -> str:
    return f"CREATE DATABASE {quote_ident(profile.database)} OWNER {quote_ident(profile.username)}"


class DatabaseDriver(ABC):
    """Lifecycle operations for one database backend."""

    kind: str = "database"

    def __init__(
        self,
        options: ServiceOptions,
        store: ConfigStore | None = None,
        stop_dependents: Callable[[], None] | None = None,
    ):
        """Initialize driver.

        Args:
            options: Effective service options.
            store: Persisted config store (default: options.db_config_file).
            stop_dependents: Called by delete() before any data is removed,
                so that nothing keeps pointing at a deleted database.
        """
        self.options = options
        self.store = store or ConfigStore(options.db_config_file)
        self.stop_dependents = stop_dependents

    # ------------------------------------------------------------------
    # Variant hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def status(self) -> DatabaseStatus:
        """Derive the current status. Must not raise."""

    @abstractmethod
    def start(self) -> bool:
        """Start the engine. Returns True once it is running."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the engine. Stopping a stopped engine is not an error."""

    @abstractmethod
    def _initialize(self, config: PersistedDatabaseConfig) -> bool:
        """Create storage if absent, start, create roles, persist config."""

    @abstractmethod
    def _remove_data(self) -> None:
        """Remove the engine's storage."""

    @abstractmethod
    def location(self) -> str:
        """Human-readable location of the database (path or cluster name)."""

    @property
    def log_file(self) -> Path | None:
        return self.options.db_log_file

    # ------------------------------------------------------------------
    # Shared lifecycle
    # ------------------------------------------------------------------

    def profiles(self, primary_password: str, test_password: str) -> PersistedDatabaseConfig:
        """Primary and test profiles for this backend."""
        o = self.options
        return PersistedDatabaseConfig(
            primary=DatabaseProfile(
                database=o.db_name,
                username=o.db_user,
                password=primary_password,
                host=o.db_host,
                port=o.db_port,
                pool=o.db_pool,
            ),
            test=DatabaseProfile(
                database=f"{o.db_name}_test",
                username=f"{o.db_user}_test",
                password=test_password,
                host=o.db_host,
                port=o.db_port,
                pool=o.db_pool,
            ),
        )

    def init(self, primary_password: str, test_password: str) -> bool:
        """Initialize the database according to its current status.

        RUNNING reports "already running" and does nothing else; INACTIVE
        starts the existing database; NOT_FOUND and NEEDS_INIT create it.

        Returns:
            True if the database is running and configured afterwards.
        """
        status = self.status()
        if status == DatabaseStatus.RUNNING:
            click.echo(f"Database is already running ({self.location()}). Nothing to initialize.")
            return True
        if status == DatabaseStatus.INACTIVE:
            click.echo(f"Database already initialized at {self.location()}; starting it.")
            return self.start()

        logger.info("database_init", kind=self.kind, status=status.value)
        config = self.profiles(primary_password, test_password)
        if not self._initialize(config):
            return False
        click.echo(f"✓ Database initialized ({self.location()})")
        return True

    def restart(self) -> bool:
        self.stop()
        return self.start()

    def delete(self) -> None:
        """Stop dependents, stop the engine, remove its data and config."""
        if self.stop_dependents is not None:
            self.stop_dependents()
        self.stop()
        self._remove_data()
        self.store.remove()
        click.echo(f"✓ Database deleted ({self.location()})")

    def describe_status(self, status: DatabaseStatus) -> str:
        """Operator-facing description of a status value."""
        if status == DatabaseStatus.RUNNING:
            return f"Database is running ({self.location()}, port {self.options.db_port})"
        if status == DatabaseStatus.INACTIVE:
            return f"Database found at {self.location()}, but it is not running"
        if status == DatabaseStatus.NEEDS_INIT:
            return f"Database at {self.location()} needs initialization"
        return f"No database found at {self.location()}"

    def connection_env(self) -> dict[str, str]:
        """Environment variables needed to reach the primary database.

        Raises:
            ConfigStoreError: If the persisted config cannot be loaded.
        """
        primary = self.store.load().primary
        return {
            "PGHOST": primary.host,
            "PGPORT": str(primary.port),
            "PGUSER": primary.username,
            "PGPASSWORD": primary.password,
            "PGDATABASE": primary.database,
            "DATABASE_URL": primary.url,
        }

    def run_command(
        self, command: Sequence[str], env_overrides: dict[str, str] | None = None
    ) -> int:
        """Run an operator command with the database environment.

        Output is not captured; it goes straight to the operator.

        Returns:
            Exit status of the command (127 if it could not be executed).
        """
        env = os.environ.copy()
        env.update(self.connection_env())
        if env_overrides:
            env.update(env_overrides)

        logger.info("run_command", command=" ".join(command))
        try:
            result = subprocess.run(list(command), env=env, cwd=self.options.base_dir)
        except FileNotFoundError:
            click.echo(f"✗ Command not found: {command[0]}", err=True)
            return 127
        return result.returncode

    def _report_start_failure(self, detail: str = "") -> None:
        """Show the tail of the engine log with upgrade or corruption guidance."""
        click.echo("✗ Database failed to start.", err=True)
        if detail:
            click.echo(f"  {detail}", err=True)

        lines = tail_log(self.log_file)
        if lines:
            click.echo(f"  Last lines of {self.log_file}:", err=True)
            for line in lines:
                click.echo(f"    {line}", err=True)

        if lines and INCOMPATIBLE_VERSION_MARKER in lines[-1]:
            click.echo(
                "  The data files were created by a different PostgreSQL major version.\n"
                "  Upgrade them with pg_upgrade (or dump and restore) before starting.",
                err=True,
            )
        else:
            click.echo(
                "  The data directory may be damaged. If it cannot be repaired, run:\n"
                "  tessera-services reinit database",
                err=True,
            )
