"""Web service component.

This package provides:
1. PID-file status and daemon process control
2. Health checking with a bounded, fixed-delay poll
3. TLS material generation
4. The first-run bootstrap protocol
5. WebServiceController tying them together
"""

from .bootstrap import (
    BootstrapProtocol,
    WebServiceCredentials,
    account_url,
    generate_credentials,
    reconnect_command,
)
from .controller import WebServiceController
from .daemon import (
    WebServiceState,
    WebServiceStatus,
    probe_process,
    read_status,
    remove_stale_pid_file,
)
from .health import HealthCheckResult, HealthPoller, HealthState, check_health
from .tls import generate_tls_material, remove_tls_material, tls_generation_required

__all__ = [
    # Status
    "WebServiceStatus",
    "WebServiceState",
    "probe_process",
    "read_status",
    "remove_stale_pid_file",
    # Health
    "HealthState",
    "HealthCheckResult",
    "HealthPoller",
    "check_health",
    # TLS
    "generate_tls_material",
    "remove_tls_material",
    "tls_generation_required",
    # Bootstrap
    "BootstrapProtocol",
    "WebServiceCredentials",
    "generate_credentials",
    "reconnect_command",
    "account_url",
    # Controller
    "WebServiceController",
]
