"""Path management for tessera-cli.

Manages the ~/.tessera/ directory structure shared by the database and
web service components. Set TESSERA_HOME to relocate everything.
"""

import os
from pathlib import Path

# Environment variable overriding the base directory
HOME_ENV_VAR = "TESSERA_HOME"

# File and directory names below the base directory
DATA_DIR_NAME = "postgres"
DB_CONFIG_NAME = "database.yaml"
DB_LOG_NAME = "postgres.log"
PID_FILE_NAME = "tessera-server.pid"
SERVER_LOG_NAME = "tessera-server.log"
TLS_DIR_NAME = "tls"
TLS_KEY_NAME = "server.key"
TLS_CERT_NAME = "server.crt"


def get_base_dir() -> Path:
    """Get the base directory for all tessera state.

    Returns:
        $TESSERA_HOME if set, otherwise ~/.tessera
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".tessera"


def default_tls_key(base_dir: Path) -> Path:
    """Built-in location of the web service private key."""
    return base_dir / TLS_DIR_NAME / TLS_KEY_NAME


def default_tls_cert(base_dir: Path) -> Path:
    """Built-in location of the web service certificate."""
    return base_dir / TLS_DIR_NAME / TLS_CERT_NAME


def ensure_dirs(base_dir: Path) -> None:
    """Create directory structure if missing.

    Creates:
    - <base>/ (mode 0o700 - user-only access)
    - <base>/tls/ (mode 0o700)

    No wizard, no prompts - silent creation.
    """
    base_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    (base_dir / TLS_DIR_NAME).mkdir(mode=0o700, exist_ok=True)
