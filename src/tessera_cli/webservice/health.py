"""Health checking for the web service.

A single health check maps one GET /api/v1/<service>/version call onto
{offline, error, online}; HealthPoller repeats it with a fixed delay until
the service is online, reports an error, or the attempt budget runs out.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import httpx

from ..client import TesseraClient
from ..errors import ServiceOfflineError, TrustError
from ..shared.logging import get_logger

logger = get_logger(__name__)


class HealthState(Enum):
    """Result of one health check."""

    OFFLINE = "offline"  # Not listening yet; retry
    ERROR = "error"  # Will not resolve by waiting
    ONLINE = "online"


@dataclass
class HealthCheckResult:
    """Result of health check attempt."""

    state: HealthState
    version: str | None = None
    message: str | None = None
    attempts: int = 0

    @property
    def online(self) -> bool:
        return self.state == HealthState.ONLINE


def version_path(service: str) -> str:
    return f"/api/v1/{service}/version"


def check_health(
    client: TesseraClient, service: str, expect_authenticated: bool = True
) -> HealthCheckResult:
    """Query the version endpoint once.

    Args:
        client: HTTPS client for the web service.
        service: Service name in the version URL.
        expect_authenticated: Whether a 401 means "online" (credentials
            already exist) or is unexpected (first-time init).
    """
    try:
        response = client.get(version_path(service))
    except ServiceOfflineError as e:
        return HealthCheckResult(HealthState.OFFLINE, message=e.message)
    except TrustError as e:
        return HealthCheckResult(HealthState.ERROR, message=f"{e.message}. {e.hint}")

    if response.status_code == 401:
        if expect_authenticated:
            return HealthCheckResult(HealthState.ONLINE, message="authentication required")
        return HealthCheckResult(
            HealthState.ERROR,
            message="Web service requires authentication before any user was created",
        )

    if response.is_success:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("version"):
            return HealthCheckResult(HealthState.ONLINE, version=str(data["version"]))

    return HealthCheckResult(
        HealthState.ERROR,
        message=f"Unexpected response from {version_path(service)}: HTTP {response.status_code}",
    )


class HealthPoller:
    """Poll the health check with a fixed delay between attempts."""

    def __init__(
        self,
        max_attempts: int = 20,
        interval_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize health poller.

        Args:
            max_attempts: Maximum number of health check attempts.
            interval_seconds: Seconds between attempts.
            sleep: Blocking sleep function.
        """
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self.sleep = sleep

    def wait_until_online(
        self,
        check: Callable[[], HealthCheckResult],
        on_attempt: Callable[[int, int, HealthCheckResult], None] | None = None,
    ) -> HealthCheckResult:
        """Run check until online, error, or the budget is exhausted.

        Args:
            check: Performs one health check.
            on_attempt: Optional callback called with (attempt, max_attempts,
                result) for progress reporting.

        Returns:
            The terminating HealthCheckResult, with attempts filled in.
        """
        result = HealthCheckResult(HealthState.OFFLINE, message="No attempt made")

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = check()
            except httpx.HTTPError as e:
                result = HealthCheckResult(HealthState.ERROR, message=str(e))
            result.attempts = attempt
            logger.debug("health_check", attempt=attempt, state=result.state.value)

            if on_attempt:
                on_attempt(attempt, self.max_attempts, result)

            if result.state != HealthState.OFFLINE:
                return result

            # Wait before next attempt (unless this was the last one)
            if attempt < self.max_attempts:
                self.sleep(self.interval_seconds)

        return HealthCheckResult(
            HealthState.OFFLINE,
            attempts=self.max_attempts,
            message=f"Web service did not come online. Last error: {result.message}",
        )
