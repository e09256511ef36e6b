"""Persisted database configuration.

The database config file holds two connection profiles, `production`
(primary) and `test`. Both must be present for a load to succeed.

Example:
    production:
      database: tessera
      username: tessera
      password: 8hG...
      host: localhost
      port: 5433
      pool: 10
    test:
      database: tessera_test
      ...
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigStoreError
from ..shared.logging import get_logger

logger = get_logger(__name__)

PRIMARY_SECTION = "production"
TEST_SECTION = "test"

PROFILE_KEYS = ("database", "username", "password", "host", "port", "pool")


@dataclass(frozen=True)
class DatabaseProfile:
    """Connection parameters for one logical database."""

    database: str
    username: str
    password: str
    host: str
    port: int
    pool: int

    @property
    def url(self) -> str:
        return (
            f"postgresql://{self.username}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    @classmethod
    def from_dict(cls, section: str, data: Any) -> DatabaseProfile:
        """Build a profile from a parsed section.

        Raises:
            ConfigStoreError: If the section is not a mapping or a key is
                missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise ConfigStoreError(f"Section '{section}' is missing from database config")
        missing = [key for key in PROFILE_KEYS if key not in data]
        if missing:
            raise ConfigStoreError(
                f"Section '{section}' is missing keys: {', '.join(missing)}"
            )
        try:
            return cls(
                database=str(data["database"]),
                username=str(data["username"]),
                password=str(data["password"]),
                host=str(data["host"]),
                port=int(data["port"]),
                pool=int(data["pool"]),
            )
        except (TypeError, ValueError) as e:
            raise ConfigStoreError(f"Section '{section}' is malformed: {e}") from e


@dataclass(frozen=True)
class PersistedDatabaseConfig:
    """Primary and test connection profiles."""

    primary: DatabaseProfile
    test: DatabaseProfile

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            PRIMARY_SECTION: asdict(self.primary),
            TEST_SECTION: asdict(self.test),
        }


class ConfigStore:
    """Load and write the persisted database config file."""

    def __init__(self, path: Path):
        """Initialize store.

        Args:
            path: Location of the YAML config file.
        """
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> PersistedDatabaseConfig:
        """Load both profiles.

        Returns:
            PersistedDatabaseConfig with primary and test profiles.

        Raises:
            ConfigStoreError: If the file is missing, unreadable, or either
                profile is absent or malformed.
        """
        if not self.path.exists():
            raise ConfigStoreError(
                f"No database config found at {self.path}",
                hint="Run: tessera-services init database",
            )

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigStoreError(f"Cannot read database config {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigStoreError(f"Database config {self.path} is not a mapping")

        # Both profiles are parsed before anything is returned
        primary = DatabaseProfile.from_dict(PRIMARY_SECTION, data.get(PRIMARY_SECTION))
        test = DatabaseProfile.from_dict(TEST_SECTION, data.get(TEST_SECTION))
        return PersistedDatabaseConfig(primary=primary, test=test)

    def write(self, config: PersistedDatabaseConfig) -> None:
        """Write both profiles with owner-only permissions (600).

        Args:
            config: Profiles to persist.
        """
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        self.path.touch(mode=0o600, exist_ok=True)
        self.path.chmod(0o600)
        with open(self.path, "w") as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
        logger.info("database_config_written", path=str(self.path))

    def remove(self) -> bool:
        """Delete the config file.

        Returns:
            True if file was deleted, False if it didn't exist
        """
        if self.path.exists():
            self.path.unlink()
            logger.info("database_config_removed", path=str(self.path))
            return True
        return False

    def resolve_port(self, default: int | None) -> int | None:
        """Return the persisted primary port, or the default if none loads."""
        try:
            return self.load().primary.port
        except ConfigStoreError:
            return default
