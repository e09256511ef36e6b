"""Service configuration.

ServiceOptions is built once per invocation from, highest precedence first:
1. Explicit operator input (CLI flags)
2. Environment variables (TESSERA_*)
3. Persisted database config (port only)
4. Defaults

The result is frozen and passed to every operation. Commands that need a
variation (e.g. destructive reinit) derive a copy with dataclasses.replace.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from .database.store import ConfigStore
from .shared.paths import (
    DATA_DIR_NAME,
    DB_CONFIG_NAME,
    DB_LOG_NAME,
    PID_FILE_NAME,
    SERVER_LOG_NAME,
    default_tls_cert,
    default_tls_key,
    get_base_dir,
)

# Default values
DEFAULT_DB_HOST = "localhost"
DEFAULT_DB_PORT = 5433
DEFAULT_DB_NAME = "tessera"
DEFAULT_DB_USER = "tessera"
DEFAULT_DB_POOL = 10
DEFAULT_CLUSTER_NAME = "tessera"
DEFAULT_CLUSTER_VERSION = "16"
DEFAULT_SERVICE_HOST = "localhost"
DEFAULT_SERVICE_PORT = 7443
DEFAULT_SERVICE_NAME = "tessera"
DEFAULT_RETRY_MAX = 20
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_ADMIN_USER = "admin"
DEFAULT_WORKSPACE = "default"
DEFAULT_SERVER_BIN = "tessera-server"
DEFAULT_CONSOLE_BIN = "tessera"

BACKENDS = ("auto", "local", "system")

# Environment variable mappings
ENV_VARS = {
    "db_host": "TESSERA_DB_HOST",
    "db_port": "TESSERA_DB_PORT",
    "connection_string": "TESSERA_DATABASE_URL",
    "service_host": "TESSERA_SERVICE_HOST",
    "service_port": "TESSERA_SERVICE_PORT",
    "retry_max": "TESSERA_RETRY_MAX",
    "retry_delay": "TESSERA_RETRY_DELAY",
    "server_bin": "TESSERA_SERVER_BIN",
    "console_bin": "TESSERA_CONSOLE_BIN",
}


@dataclass(frozen=True)
class ServiceOptions:
    """Immutable configuration consulted by every lifecycle operation."""

    base_dir: Path

    # Database
    db_backend: str = "auto"
    db_host: str = DEFAULT_DB_HOST
    db_port: int = DEFAULT_DB_PORT
    db_name: str = DEFAULT_DB_NAME
    db_user: str = DEFAULT_DB_USER
    db_pool: int = DEFAULT_DB_POOL
    cluster_name: str = DEFAULT_CLUSTER_NAME
    cluster_version: str = DEFAULT_CLUSTER_VERSION
    connection_string: str | None = None

    # Web service
    service_host: str = DEFAULT_SERVICE_HOST
    service_port: int = DEFAULT_SERVICE_PORT
    service_name: str = DEFAULT_SERVICE_NAME
    ssl_key: Path | None = None
    ssl_cert: Path | None = None
    ssl_pin: bool = True
    ssl_skip_verify: bool = False
    retry_max: int = DEFAULT_RETRY_MAX
    retry_delay: float = DEFAULT_RETRY_DELAY

    # Credentials and bootstrap
    admin_user: str = DEFAULT_ADMIN_USER
    admin_password: str | None = None
    workspace: str = DEFAULT_WORKSPACE
    register_data_service: bool = True

    # Behavior
    accept_defaults: bool = False
    assume_yes: bool = False
    delete_data: bool = False

    # External executables
    server_bin: str = DEFAULT_SERVER_BIN
    console_bin: str = DEFAULT_CONSOLE_BIN

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        # Fill TLS paths from the base directory when not given explicitly
        if self.ssl_key is None:
            object.__setattr__(self, "ssl_key", default_tls_key(self.base_dir))
        if self.ssl_cert is None:
            object.__setattr__(self, "ssl_cert", default_tls_cert(self.base_dir))

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    @property
    def data_dir(self) -> Path:
        return self.base_dir / DATA_DIR_NAME

    @property
    def db_config_file(self) -> Path:
        return self.base_dir / DB_CONFIG_NAME

    @property
    def db_log_file(self) -> Path:
        return self.base_dir / DB_LOG_NAME

    @property
    def pid_file(self) -> Path:
        return self.base_dir / PID_FILE_NAME

    @property
    def server_log_file(self) -> Path:
        return self.base_dir / SERVER_LOG_NAME

    @property
    def uses_default_tls_paths(self) -> bool:
        """True when the operator has not supplied custom TLS material."""
        return self.ssl_key == default_tls_key(self.base_dir) and self.ssl_cert == default_tls_cert(
            self.base_dir
        )

    @property
    def service_url(self) -> str:
        return f"https://{self.service_host}:{self.service_port}"

    @property
    def api_url(self) -> str:
        return f"{self.service_url}/api/v1"


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw (string) value to the type of the named option."""
    default = {f.name: f.default for f in fields(ServiceOptions)}.get(name)
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if name in ("ssl_key", "ssl_cert", "base_dir"):
        return Path(value).expanduser()
    return value


def resolve_db_port(default: int | None, store: ConfigStore) -> int | None:
    """Persisted primary-profile port if the stored config loads, else the default."""
    return store.resolve_port(default)


def build_options(
    explicit: dict[str, Any] | None = None,
    base_dir: Path | None = None,
    environ: dict[str, str] | None = None,
) -> ServiceOptions:
    """Build the effective options for one invocation.

    Args:
        explicit: Values the operator supplied (None values are ignored).
        base_dir: State directory (default: $TESSERA_HOME or ~/.tessera).
        environ: Environment mapping (default: os.environ).

    Returns:
        ServiceOptions with values and sources
    """
    environ = os.environ if environ is None else environ
    base_dir = base_dir or get_base_dir()
    persisted_port = resolve_db_port(None, ConfigStore(base_dir / DB_CONFIG_NAME))
    values: dict[str, Any] = {}
    sources: dict[str, str] = {}

    if persisted_port is not None:
        values["db_port"] = persisted_port
        sources["db_port"] = "persisted config"

    for key, env_var in ENV_VARS.items():
        raw = environ.get(env_var)
        if raw:
            try:
                values[key] = _coerce(key, raw)
            except ValueError:
                continue
            sources[key] = "environment"

    for key, value in (explicit or {}).items():
        if value is None:
            continue
        values[key] = _coerce(key, value)
        sources[key] = "explicit"

    return ServiceOptions(base_dir=base_dir, _sources=sources, **values)
