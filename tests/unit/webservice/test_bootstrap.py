"""Unit tests for the first-run bootstrap protocol."""

import json
import shlex

import httpx
import pytest

from tessera_cli.client import TesseraClient, TrustMode
from tessera_cli.errors import BootstrapError, BootstrapStage
from tessera_cli.webservice.bootstrap import (
    BootstrapProtocol,
    WebServiceCredentials,
    account_url,
    format_reconnect_command,
    generate_credentials,
    reconnect_command,
)


class FakeServer:
    """Minimal REST surface for the bootstrap calls."""

    def __init__(self, workspace_name=None, username=None, token="tok-123", fail_path=None):
        self.workspace_name = workspace_name
        self.username = username
        self.token = token
        self.fail_path = fail_path
        self.requests: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append((request.url.path, body))
        if request.url.path == self.fail_path:
            return httpx.Response(500, text="internal error")
        if request.url.path == "/api/v1/workspaces":
            return httpx.Response(201, json={"name": self.workspace_name or body["name"]})
        if request.url.path == "/api/v1/users":
            return httpx.Response(201, json={"username": self.username or body["username"]})
        if request.url.path == "/api/v1/auth/generate-token":
            return httpx.Response(200, json={"token": self.token})
        return httpx.Response(404)

    @property
    def paths(self):
        return [path for path, _ in self.requests]


def protocol_for(server, workspace="default"):
    client = TesseraClient(
        "https://localhost:7443", trust_mode=TrustMode.SKIP, transport=httpx.MockTransport(server)
    )
    return BootstrapProtocol(client, workspace)


@pytest.fixture
def credentials():
    return WebServiceCredentials("admin", "hunter2")


@pytest.mark.cli_unit
class TestBootstrapProtocol:
    """Tests for BootstrapProtocol.run."""

    def test_runs_stages_in_order(self, credentials):
        server = FakeServer()

        result = protocol_for(server).run(credentials)

        assert server.paths == [
            "/api/v1/workspaces",
            "/api/v1/users",
            "/api/v1/auth/generate-token",
        ]
        assert result.token == "tok-123"
        assert result.username == "admin"
        assert server.requests[1][1]["admin"] is True

    def test_workspace_mismatch_stops_before_user(self, credentials):
        server = FakeServer(workspace_name="other")

        with pytest.raises(BootstrapError) as exc_info:
            protocol_for(server).run(credentials)

        assert exc_info.value.stage == BootstrapStage.WORKSPACE
        assert server.paths == ["/api/v1/workspaces"]

    def test_user_mismatch(self, credentials):
        server = FakeServer(username="someone-else")

        with pytest.raises(BootstrapError) as exc_info:
            protocol_for(server).run(credentials)

        assert exc_info.value.stage == BootstrapStage.USER
        assert "/api/v1/auth/generate-token" not in server.paths

    def test_empty_token(self, credentials):
        with pytest.raises(BootstrapError) as exc_info:
            protocol_for(FakeServer(token="")).run(credentials)
        assert exc_info.value.stage == BootstrapStage.TOKEN

    def test_http_error_names_stage(self, credentials):
        server = FakeServer(fail_path="/api/v1/users")

        with pytest.raises(BootstrapError, match="HTTP 500") as exc_info:
            protocol_for(server).run(credentials)
        assert exc_info.value.stage == BootstrapStage.USER


@pytest.mark.cli_unit
class TestCredentials:
    """Tests for credential helpers."""

    def test_generated_password(self):
        credentials = generate_credentials("admin")
        assert credentials.username == "admin"
        assert len(credentials.password) >= 16

    def test_given_password_is_kept(self):
        assert generate_credentials("admin", "pw").password == "pw"

    def test_repr_hides_password(self, credentials):
        assert "hunter2" not in repr(credentials)


@pytest.mark.cli_unit
class TestReconnectCommand:
    """Tests for the console reconnect command."""

    def test_pinned(self, make_options):
        options = make_options()
        command = reconnect_command(options, "tok")

        assert command[:6] == ["tessera", "connect", "--url", options.api_url, "--token", "tok"]
        assert command[6:] == ["--ca-cert", str(options.ssl_cert)]

    def test_skip_verify(self, make_options):
        assert reconnect_command(make_options(ssl_skip_verify=True), "tok")[-1] == "--insecure"

    def test_verify(self, make_options):
        assert reconnect_command(make_options(ssl_pin=False), "tok")[-1] == "tok"

    def test_formatted_is_shell_safe(self, make_options):
        options = make_options(console_bin="tessera")
        assert shlex.split(format_reconnect_command(options, "a b")) == reconnect_command(
            options, "a b"
        )

    def test_account_url(self, make_options):
        assert account_url(make_options()) == "https://localhost:7443/api/v1/auth/account"
