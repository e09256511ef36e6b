"""Shared modules for tessera-cli.

This module provides functionality used by both managed components:
- Paths (~/.tessera layout)
- Logging (structlog configuration)
"""

from .logging import configure_logging, get_logger, level_for_verbosity
from .paths import (
    HOME_ENV_VAR,
    default_tls_cert,
    default_tls_key,
    ensure_dirs,
    get_base_dir,
)

__all__ = [
    # Paths
    "HOME_ENV_VAR",
    "get_base_dir",
    "default_tls_key",
    "default_tls_cert",
    "ensure_dirs",
    # Logging
    "configure_logging",
    "get_logger",
    "level_for_verbosity",
]
