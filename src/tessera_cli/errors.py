"""Error taxonomy for tessera-cli.

Every failure the operator should see as a readable message derives from
TesseraError. The CLI layer renders message and hint and exits non-zero;
anything else is an unexpected fault and propagates.
"""

from dataclasses import dataclass, field
from enum import Enum


class BootstrapStage(Enum):
    """Stages of the first-run bootstrap sequence."""

    WORKSPACE = "workspace"
    USER = "user"
    TOKEN = "token"


@dataclass
class TesseraError(Exception):
    """Base error class for operator-facing failures."""

    message: str
    hint: str | None = None
    retryable: bool = False

    def __str__(self) -> str:
        return self.message


@dataclass
class PrerequisiteError(TesseraError):
    """Required external tooling is missing (detected before any mutation)."""

    missing: list[str] = field(default_factory=list)


@dataclass
class StateError(TesseraError):
    """Operation requested against a component in an incompatible status."""


@dataclass
class ServiceOfflineError(TesseraError):
    """The web service is not accepting connections yet."""

    retryable: bool = True


@dataclass
class TrustError(TesseraError):
    """TLS validation failed. Never retried."""

    hint: str | None = (
        "Reinitialize the web service with consistent TLS options "
        "(--ssl-key/--ssl-cert/--ssl-pin/--ssl-skip-verify)."
    )


@dataclass
class BootstrapError(TesseraError):
    """A bootstrap REST call failed or returned an unexpected response."""

    stage: BootstrapStage = BootstrapStage.WORKSPACE


@dataclass
class ConfigStoreError(TesseraError):
    """The persisted database configuration is missing or malformed."""
