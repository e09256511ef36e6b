"""Local cluster driver.

Owns a private PostgreSQL data directory (<base>/postgres) managed with the
initdb/pg_ctl/psql binaries. The server listens on the configured port and
puts its unix socket inside the data directory.
"""

from __future__ import annotations

import shlex
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import click

from ..shared.logging import get_logger
from .base import (
    DatabaseDriver,
    DatabaseStatus,
    create_database_sql,
    database_exists_sql,
    role_sql,
    run_cmd,
)
from .store import ConfigStore, PersistedDatabaseConfig

if TYPE_CHECKING:
    from ..config import ServiceOptions

logger = get_logger(__name__)

SUPERUSER = "postgres"
REQUIRED_BINARIES = ("initdb", "pg_ctl", "psql")


class LocalClusterDriver(DatabaseDriver):
    """Database in a self-owned data directory."""

    kind = "local"

    def __init__(
        self,
        options: ServiceOptions,
        binaries: dict[str, Path],
        store: ConfigStore | None = None,
        stop_dependents: Callable[[], None] | None = None,
    ):
        super().__init__(options, store=store, stop_dependents=stop_dependents)
        self.binaries = binaries
        self.data_dir = options.data_dir

    def location(self) -> str:
        return str(self.data_dir)

    def _pg_ctl_running(self) -> bool:
        try:
            result = run_cmd(
                [self.binaries["pg_ctl"], "status", "-D", self.data_dir], timeout=10
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        # 0 = running, 3 = not running, 4 = no accessible data directory
        return result.returncode == 0

    def status(self) -> DatabaseStatus:
        if not self.data_dir.exists():
            return DatabaseStatus.NOT_FOUND
        if not (self.data_dir / "PG_VERSION").exists():
            return DatabaseStatus.NEEDS_INIT
        if self._pg_ctl_running():
            return DatabaseStatus.RUNNING
        if not self.store.exists():
            return DatabaseStatus.NEEDS_INIT
        return DatabaseStatus.INACTIVE

    def start(self) -> bool:
        if not (self.data_dir / "PG_VERSION").exists():
            click.echo(
                f"✗ No initialized database at {self.data_dir}. "
                "Run: tessera-services init database",
                err=True,
            )
            return False
        if self._pg_ctl_running():
            click.echo("Database is already running.")
            return True

        self.options.db_log_file.parent.mkdir(parents=True, exist_ok=True)
        server_opts = f"-p {self.options.db_port} -k {shlex.quote(str(self.data_dir))}"
        try:
            result = run_cmd(
                [
                    self.binaries["pg_ctl"],
                    "start",
                    "-D",
                    self.data_dir,
                    "-l",
                    self.options.db_log_file,
                    "-w",
                    "-t",
                    "60",
                    "-o",
                    server_opts,
                ],
                timeout=90,
            )
        except subprocess.TimeoutExpired:
            self._report_start_failure("pg_ctl start timed out")
            return False

        if result.returncode != 0:
            self._report_start_failure(result.stderr.strip())
            return False

        logger.info("database_started", data_dir=str(self.data_dir), port=self.options.db_port)
        click.echo(f"✓ Database started on port {self.options.db_port}")
        return True

    def stop(self) -> None:
        if not self.data_dir.exists() or not self._pg_ctl_running():
            click.echo("Database is not running.")
            return

        result = run_cmd(
            [self.binaries["pg_ctl"], "stop", "-D", self.data_dir, "-m", "fast", "-w"],
            timeout=90,
        )
        if result.returncode != 0:
            click.echo(f"✗ Failed to stop database: {result.stderr.strip()}", err=True)
            return
        logger.info("database_stopped", data_dir=str(self.data_dir))
        click.echo("✓ Database stopped")

    def _psql(self, sql: str) -> subprocess.CompletedProcess:
        return run_cmd(
            [
                self.binaries["psql"],
                "-h",
                self.data_dir,
                "-p",
                str(self.options.db_port),
                "-U",
                SUPERUSER,
                "-d",
                "postgres",
                "-v",
                "ON_ERROR_STOP=1",
                "-tAc",
                sql,
            ]
        )

    def _create_roles(self, config: PersistedDatabaseConfig) -> bool:
        for profile in (config.primary, config.test):
            steps = [role_sql(profile)]
            exists = self._psql(database_exists_sql(profile))
            if exists.returncode != 0:
                click.echo(f"✗ Cannot query databases: {exists.stderr.strip()}", err=True)
                return False
            if exists.stdout.strip() != "1":
                steps.append(create_database_sql(profile))

            for sql in steps:
                result = self._psql(sql)
                if result.returncode != 0:
                    click.echo(
                        f"✗ Failed to create role/database '{profile.database}': "
                        f"{result.stderr.strip()}",
                        err=True,
                    )
                    return False
        return True

    def _initialize(self, config: PersistedDatabaseConfig) -> bool:
        if not (self.data_dir / "PG_VERSION").exists():
            self.data_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            click.echo(f"Creating database cluster in {self.data_dir}...")
            result = run_cmd(
                [
                    self.binaries["initdb"],
                    "-D",
                    self.data_dir,
                    "-U",
                    SUPERUSER,
                    "--auth-local=trust",
                    "--auth-host=scram-sha-256",
                    "-E",
                    "UTF8",
                ],
                timeout=120,
            )
            if result.returncode != 0:
                click.echo(f"✗ initdb failed: {result.stderr.strip()}", err=True)
                return False

        if not self.start():
            return False
        if not self._create_roles(config):
            return False

        self.store.write(config)
        return True

    def _remove_data(self) -> None:
        if self.data_dir.exists():
            shutil.rmtree(self.data_dir)
            logger.info("database_data_removed", data_dir=str(self.data_dir))
        self.options.db_log_file.unlink(missing_ok=True)
