"""System cluster driver.

Manages a named cluster owned by the host's postgresql-common tooling
(pg_lsclusters, pg_createcluster, pg_ctlcluster, pg_dropcluster). Cluster
files belong to the postgres user, so commands run through a privilege
prefix (sudo -u postgres by default).
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
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

REQUIRED_BINARIES = ("pg_lsclusters", "pg_createcluster", "pg_ctlcluster", "pg_dropcluster", "psql")
DEFAULT_PRIVILEGE_PREFIX = ("sudo", "-u", "postgres")


@dataclass
class ClusterInfo:
    """One row of pg_lsclusters output."""

    version: str
    name: str
    port: int
    online: bool
    owner: str
    data_dir: Path
    log_file: Path | None


def parse_lsclusters(output: str) -> list[ClusterInfo]:
    """Parse `pg_lsclusters --no-header` output.

    Columns: Ver Cluster Port Status Owner Data-directory Log-file
    """
    clusters = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 6:
            continue
        try:
            port = int(parts[2])
        except ValueError:
            continue
        clusters.append(
            ClusterInfo(
                version=parts[0],
                name=parts[1],
                port=port,
                online=parts[3].startswith("online"),
                owner=parts[4],
                data_dir=Path(parts[5]),
                log_file=Path(parts[6]) if len(parts) > 6 else None,
            )
        )
    return clusters


class SystemClusterDriver(DatabaseDriver):
    """Database in a cluster managed by pg_ctlcluster."""

    kind = "system"

    def __init__(
        self,
        options: ServiceOptions,
        binaries: dict[str, Path],
        store: ConfigStore | None = None,
        stop_dependents: Callable[[], None] | None = None,
        privilege_prefix: Sequence[str] = DEFAULT_PRIVILEGE_PREFIX,
    ):
        super().__init__(options, store=store, stop_dependents=stop_dependents)
        self.binaries = binaries
        self.version = options.cluster_version
        self.name = options.cluster_name
        self.privilege_prefix = list(privilege_prefix)

    def location(self) -> str:
        return f"cluster {self.version}/{self.name}"

    @property
    def log_file(self) -> Path | None:
        info = self._cluster()
        if info and info.log_file:
            return info.log_file
        return Path(f"/var/log/postgresql/postgresql-{self.version}-{self.name}.log")

    def _run(self, *args: str | Path, timeout: float = 60.0) -> subprocess.CompletedProcess:
        return run_cmd([*self.privilege_prefix, *args], timeout=timeout)

    def _cluster(self) -> ClusterInfo | None:
        try:
            result = run_cmd([self.binaries["pg_lsclusters"], "--no-header"], timeout=10)
        except (OSError, subprocess.TimeoutExpired):
            return None
        if result.returncode != 0:
            return None
        for info in parse_lsclusters(result.stdout):
            if info.version == self.version and info.name == self.name:
                return info
        return None

    def status(self) -> DatabaseStatus:
        info = self._cluster()
        if info is None:
            return DatabaseStatus.NOT_FOUND
        if info.online:
            return DatabaseStatus.RUNNING
        if not self.store.exists():
            return DatabaseStatus.NEEDS_INIT
        return DatabaseStatus.INACTIVE

    def start(self) -> bool:
        info = self._cluster()
        if info is None:
            click.echo(
                f"✗ {self.location()} does not exist. Run: tessera-services init database",
                err=True,
            )
            return False
        if info.online:
            click.echo("Database is already running.")
            return True

        result = self._run(self.binaries["pg_ctlcluster"], self.version, self.name, "start")
        if result.returncode != 0:
            self._report_start_failure(result.stderr.strip())
            return False

        logger.info("database_started", cluster=self.location(), port=info.port)
        click.echo(f"✓ Database started on port {info.port}")
        return True

    def stop(self) -> None:
        info = self._cluster()
        if info is None or not info.online:
            click.echo("Database is not running.")
            return

        result = self._run(self.binaries["pg_ctlcluster"], self.version, self.name, "stop")
        if result.returncode != 0:
            click.echo(f"✗ Failed to stop database: {result.stderr.strip()}", err=True)
            return
        logger.info("database_stopped", cluster=self.location())
        click.echo("✓ Database stopped")

    def _psql(self, sql: str) -> subprocess.CompletedProcess:
        return self._run(
            self.binaries["psql"],
            "--cluster",
            f"{self.version}/{self.name}",
            "-d",
            "postgres",
            "-v",
            "ON_ERROR_STOP=1",
            "-tAc",
            sql,
        )

    def _initialize(self, config: PersistedDatabaseConfig) -> bool:
        if self._cluster() is None:
            click.echo(f"Creating {self.location()} on port {self.options.db_port}...")
            result = self._run(
                self.binaries["pg_createcluster"],
                "-p",
                str(self.options.db_port),
                self.version,
                self.name,
                timeout=120,
            )
            if result.returncode != 0:
                click.echo(f"✗ pg_createcluster failed: {result.stderr.strip()}", err=True)
                return False

        if not self.start():
            return False

        # An existing cluster keeps its own port
        info = self._cluster()
        if info is not None and info.port != config.primary.port:
            config = PersistedDatabaseConfig(
                primary=replace(config.primary, port=info.port),
                test=replace(config.test, port=info.port),
            )

        for profile in (config.primary, config.test):
            exists = self._psql(database_exists_sql(profile))
            steps = [role_sql(profile)]
            if exists.returncode == 0 and exists.stdout.strip() != "1":
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

        self.store.write(config)
        return True

    def _remove_data(self) -> None:
        if self._cluster() is None:
            return
        result = self._run(
            self.binaries["pg_dropcluster"], "--stop", self.version, self.name, timeout=120
        )
        if result.returncode != 0:
            click.echo(f"✗ pg_dropcluster failed: {result.stderr.strip()}", err=True)
            return
        logger.info("database_cluster_dropped", cluster=self.location())
