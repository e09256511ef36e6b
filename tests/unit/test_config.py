"""Unit tests for option layering in tessera_cli.config."""

from dataclasses import FrozenInstanceError, replace

import pytest

from tessera_cli.config import (
    DEFAULT_DB_PORT,
    DEFAULT_SERVICE_PORT,
    build_options,
    resolve_db_port,
)
from tessera_cli.database.store import (
    ConfigStore,
    DatabaseProfile,
    PersistedDatabaseConfig,
)


def _persist_port(path, port):
    profile = DatabaseProfile("tessera", "tessera", "pw", "localhost", port, 10)
    ConfigStore(path).write(PersistedDatabaseConfig(primary=profile, test=profile))


@pytest.mark.cli_unit
class TestBuildOptions:
    """Tests for build_options precedence."""

    def test_defaults(self, tmp_path):
        options = build_options(base_dir=tmp_path, environ={})

        assert options.db_port == DEFAULT_DB_PORT
        assert options.service_port == DEFAULT_SERVICE_PORT
        assert options.ssl_pin is True
        assert options.ssl_skip_verify is False
        assert options.get_source("db_port") == "default"

    def test_tls_paths_default_under_base_dir(self, tmp_path):
        options = build_options(base_dir=tmp_path, environ={})

        assert options.ssl_key == tmp_path / "tls" / "server.key"
        assert options.ssl_cert == tmp_path / "tls" / "server.crt"
        assert options.uses_default_tls_paths

    def test_custom_tls_paths_are_not_default(self, tmp_path):
        options = build_options(
            {"ssl_key": str(tmp_path / "k.pem")}, base_dir=tmp_path, environ={}
        )
        assert not options.uses_default_tls_paths

    def test_persisted_port_beats_default(self, tmp_path):
        _persist_port(tmp_path / "database.yaml", 6001)

        options = build_options(base_dir=tmp_path, environ={})

        assert options.db_port == 6001
        assert options.get_source("db_port") == "persisted config"

    def test_environment_beats_persisted_port(self, tmp_path):
        _persist_port(tmp_path / "database.yaml", 6001)

        options = build_options(base_dir=tmp_path, environ={"TESSERA_DB_PORT": "6002"})

        assert options.db_port == 6002
        assert options.get_source("db_port") == "environment"

    def test_explicit_beats_everything(self, tmp_path):
        _persist_port(tmp_path / "database.yaml", 6001)

        options = build_options(
            {"db_port": 6003}, base_dir=tmp_path, environ={"TESSERA_DB_PORT": "6002"}
        )

        assert options.db_port == 6003
        assert options.get_source("db_port") == "explicit"

    def test_none_values_are_ignored(self, tmp_path):
        options = build_options({"service_port": None}, base_dir=tmp_path, environ={})
        assert options.service_port == DEFAULT_SERVICE_PORT

    def test_environment_values_are_coerced(self, tmp_path):
        options = build_options(
            base_dir=tmp_path,
            environ={"TESSERA_RETRY_MAX": "5", "TESSERA_RETRY_DELAY": "0.25"},
        )
        assert options.retry_max == 5
        assert options.retry_delay == 0.25

    def test_unparsable_environment_value_falls_through(self, tmp_path):
        options = build_options(base_dir=tmp_path, environ={"TESSERA_DB_PORT": "not-a-port"})
        assert options.db_port == DEFAULT_DB_PORT

    def test_options_are_frozen(self, tmp_path):
        options = build_options(base_dir=tmp_path, environ={})
        with pytest.raises(FrozenInstanceError):
            options.delete_data = True  # type: ignore[misc]

    def test_replace_derives_a_copy(self, tmp_path):
        options = build_options(base_dir=tmp_path, environ={})
        destructive = replace(options, delete_data=True)

        assert destructive.delete_data is True
        assert options.delete_data is False

    def test_urls(self, tmp_path):
        options = build_options(
            {"service_host": "example.test", "service_port": 9443}, base_dir=tmp_path, environ={}
        )
        assert options.service_url == "https://example.test:9443"
        assert options.api_url == "https://example.test:9443/api/v1"


@pytest.mark.cli_unit
class TestResolveDbPort:
    """Tests for resolve_db_port."""

    def test_uses_persisted_port(self, tmp_path):
        path = tmp_path / "database.yaml"
        _persist_port(path, 6100)
        assert resolve_db_port(5433, ConfigStore(path)) == 6100

    def test_falls_back_when_missing(self, tmp_path):
        assert resolve_db_port(5433, ConfigStore(tmp_path / "database.yaml")) == 5433

    def test_falls_back_when_incomplete(self, tmp_path):
        path = tmp_path / "database.yaml"
        path.write_text("production:\n  port: 6100\n")
        assert resolve_db_port(5433, ConfigStore(path)) == 5433
