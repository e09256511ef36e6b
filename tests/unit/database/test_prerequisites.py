"""Unit tests for tooling detection and driver selection."""

from pathlib import Path
from unittest.mock import patch

import pytest

from tessera_cli.database import (
    LocalClusterDriver,
    PostgresDetector,
    PostgresInfo,
    StandaloneDriver,
    SystemClusterDriver,
    create_driver,
)
from tessera_cli.database import local, system
from tessera_cli.errors import PrerequisiteError


class StubDetector:
    """Detector reporting a fixed set of binaries."""

    def __init__(self, *names: str):
        self.info = PostgresInfo(
            binaries={n: Path(f"/usr/bin/{n}") for n in names}
            | {n: None for n in PostgresDetector.NAMES if n not in names}
        )

    def detect(self) -> PostgresInfo:
        return self.info


@pytest.mark.cli_unit
class TestPostgresDetector:
    """Tests for PostgresDetector."""

    def test_finds_binaries_on_path(self):
        with patch("shutil.which", side_effect=lambda name: f"/usr/bin/{name}"):
            info = PostgresDetector(search_dirs=[]).detect()

        assert info.has_all(local.REQUIRED_BINARIES)
        assert info.binaries["initdb"] == Path("/usr/bin/initdb")

    def test_falls_back_to_common_dirs(self, tmp_path):
        (tmp_path / "initdb").touch()
        with patch("shutil.which", return_value=None):
            info = PostgresDetector(search_dirs=[tmp_path]).detect()

        assert info.binaries["initdb"] == tmp_path / "initdb"
        assert info.missing(local.REQUIRED_BINARIES) == ["pg_ctl", "psql"]


@pytest.mark.cli_unit
class TestCreateDriver:
    """Tests for create_driver variant selection."""

    def test_connection_string_selects_standalone(self, make_options):
        options = make_options(connection_string="postgresql://app:pw@db/app")
        assert isinstance(create_driver(options, detector=StubDetector()), StandaloneDriver)

    def test_auto_prefers_local_cluster(self, make_options):
        detector = StubDetector(*PostgresDetector.NAMES)
        assert isinstance(create_driver(make_options(), detector=detector), LocalClusterDriver)

    def test_auto_uses_system_cluster_without_initdb(self, make_options):
        detector = StubDetector(*system.REQUIRED_BINARIES)
        assert isinstance(create_driver(make_options(), detector=detector), SystemClusterDriver)

    def test_explicit_backend(self, make_options):
        detector = StubDetector(*PostgresDetector.NAMES)
        driver = create_driver(make_options(db_backend="system"), detector=detector)
        assert isinstance(driver, SystemClusterDriver)

    def test_missing_tools_are_listed(self, make_options):
        with pytest.raises(PrerequisiteError) as exc_info:
            create_driver(make_options(), detector=StubDetector("psql"))

        assert exc_info.value.missing == ["initdb", "pg_ctl"]
        assert "--connection-string" in exc_info.value.hint

    def test_stop_dependents_is_wired(self, make_options):
        hook = object()
        driver = create_driver(
            make_options(), stop_dependents=hook, detector=StubDetector(*PostgresDetector.NAMES)
        )
        assert driver.stop_dependents is hook
