"""First-run bootstrap of the web service.

Runs once, right after a freshly initialized web service comes online:
1. Create the default workspace
2. Create the administrative user
3. Mint an API token for that user

Each stage must succeed before the next one runs. Failures are reported
per stage so the operator knows where to resume.
"""

from __future__ import annotations

import secrets
import shlex
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

import httpx

from ..client import TesseraClient, TrustMode, trust_mode_for
from ..errors import BootstrapError, BootstrapStage, ServiceOfflineError, TrustError
from ..shared.logging import get_logger

if TYPE_CHECKING:
    from ..config import ServiceOptions

logger = get_logger(__name__)

WORKSPACES_PATH = "/api/v1/workspaces"
USERS_PATH = "/api/v1/users"
TOKEN_PATH = "/api/v1/auth/generate-token"
ACCOUNT_PATH = "/api/v1/auth/account"


@dataclass(frozen=True)
class WebServiceCredentials:
    """Administrative credentials. Displayed to the operator, never written to disk."""

    username: str
    password: str
    token: str | None = None

    def __repr__(self) -> str:
        return f"WebServiceCredentials(username={self.username!r}, password='***')"


def generate_credentials(username: str, password: str | None = None) -> WebServiceCredentials:
    """Credentials with a random password unless one is given."""
    return WebServiceCredentials(username=username, password=password or secrets.token_urlsafe(18))


class BootstrapProtocol:
    """REST sequence provisioning workspace, admin user and token."""

    def __init__(self, client: TesseraClient, workspace: str):
        self.client = client
        self.workspace = workspace

    def _post(self, stage: BootstrapStage, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.client.post(path, json=body)
        except (ServiceOfflineError, TrustError) as e:
            raise BootstrapError(f"{stage.value} request failed: {e.message}", stage=stage) from e
        except httpx.HTTPError as e:
            raise BootstrapError(f"{stage.value} request failed: {e}", stage=stage) from e

        if not response.is_success:
            raise BootstrapError(
                f"{stage.value} request returned HTTP {response.status_code}: "
                f"{response.text[:200]}",
                stage=stage,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise BootstrapError(f"{stage.value} response is not JSON", stage=stage) from e
        if not isinstance(data, dict):
            raise BootstrapError(f"{stage.value} response is not a JSON object", stage=stage)
        return data

    def create_workspace(self) -> None:
        data = self._post(BootstrapStage.WORKSPACE, WORKSPACES_PATH, {"name": self.workspace})
        if data.get("name") != self.workspace:
            raise BootstrapError(
                f"Workspace creation failed: requested '{self.workspace}', "
                f"server returned '{data.get('name')}'",
                hint="Check the web service log, then run: tessera-services reinit webservice",
                stage=BootstrapStage.WORKSPACE,
            )
        logger.info("bootstrap_workspace_created", workspace=self.workspace)

    def create_admin_user(self, credentials: WebServiceCredentials) -> None:
        data = self._post(
            BootstrapStage.USER,
            USERS_PATH,
            {"username": credentials.username, "password": credentials.password, "admin": True},
        )
        if data.get("username") != credentials.username:
            raise BootstrapError(
                f"User creation failed: requested '{credentials.username}', "
                f"server returned '{data.get('username')}'",
                hint="Check the web service log, then run: tessera-services reinit webservice",
                stage=BootstrapStage.USER,
            )
        logger.info("bootstrap_user_created", username=credentials.username)

    def generate_token(self, credentials: WebServiceCredentials) -> str:
        data = self._post(
            BootstrapStage.TOKEN,
            TOKEN_PATH,
            {"username": credentials.username, "password": credentials.password},
        )
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise BootstrapError(
                "Token generation failed: response did not contain a token",
                hint=f"Log in as '{credentials.username}' and create a token manually.",
                stage=BootstrapStage.TOKEN,
            )
        logger.info("bootstrap_token_generated", username=credentials.username)
        return token

    def run(self, credentials: WebServiceCredentials) -> WebServiceCredentials:
        """Run all stages in order.

        Returns:
            Credentials including the new API token.

        Raises:
            BootstrapError: Naming the stage that failed.
        """
        self.create_workspace()
        self.create_admin_user(credentials)
        token = self.generate_token(credentials)
        return replace(credentials, token=token)


def tls_flags(options: ServiceOptions) -> list[str]:
    """Console flags matching the orchestrator's own trust decision."""
    mode = trust_mode_for(options)
    if mode == TrustMode.PIN:
        return ["--ca-cert", str(options.ssl_cert)]
    if mode == TrustMode.SKIP:
        return ["--insecure"]
    return []


def reconnect_command(options: ServiceOptions, token: str) -> list[str]:
    """Command the operator can run to connect the console to this service."""
    return [
        options.console_bin,
        "connect",
        "--url",
        options.api_url,
        "--token",
        token,
        *tls_flags(options),
    ]


def account_url(options: ServiceOptions) -> str:
    return f"{options.service_url}{ACCOUNT_PATH}"


def format_reconnect_command(options: ServiceOptions, token: str) -> str:
    return shlex.join(reconnect_command(options, token))
