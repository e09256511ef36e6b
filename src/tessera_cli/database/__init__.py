"""Database component.

This package provides:
1. The persisted database config (ConfigStore)
2. The DatabaseDriver contract and its three variants
3. Tooling detection and driver construction
"""

from .base import DatabaseDriver, DatabaseStatus, generate_password
from .local import LocalClusterDriver
from .prerequisites import PostgresDetector, PostgresInfo, create_driver
from .standalone import StandaloneDriver, parse_connection_string
from .store import ConfigStore, DatabaseProfile, PersistedDatabaseConfig
from .system import ClusterInfo, SystemClusterDriver, parse_lsclusters

__all__ = [
    # Persisted config
    "ConfigStore",
    "DatabaseProfile",
    "PersistedDatabaseConfig",
    # Drivers
    "DatabaseDriver",
    "DatabaseStatus",
    "LocalClusterDriver",
    "SystemClusterDriver",
    "StandaloneDriver",
    "ClusterInfo",
    "parse_lsclusters",
    "parse_connection_string",
    "generate_password",
    # Prerequisites
    "PostgresDetector",
    "PostgresInfo",
    "create_driver",
]
