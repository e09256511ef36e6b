"""Shared test fixtures for tessera-cli tests.

This module provides:
- isolated_home: TESSERA_HOME pointing into tmp_path
- make_options: ServiceOptions factory rooted at that directory
- FakeDriver: recording DatabaseDriver with a settable status
- ScriptedHealth: health checker replaying a fixed list of results
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from tessera_cli.config import ServiceOptions, build_options
from tessera_cli.database import DatabaseDriver, DatabaseStatus
from tessera_cli.database.store import PersistedDatabaseConfig
from tessera_cli.webservice.health import HealthCheckResult, HealthState

# =============================================================================
# Options
# =============================================================================


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point TESSERA_HOME at a fresh directory and clear TESSERA_* overrides."""
    for name in list(os.environ):
        if name.startswith("TESSERA_"):
            monkeypatch.delenv(name, raising=False)
    home = tmp_path / "tessera"
    home.mkdir()
    monkeypatch.setenv("TESSERA_HOME", str(home))
    return home


@pytest.fixture
def make_options(isolated_home: Path) -> Callable[..., ServiceOptions]:
    """Build ServiceOptions with explicit overrides and an empty environment."""

    def _make(**explicit: Any) -> ServiceOptions:
        return build_options(explicit, base_dir=isolated_home, environ={})

    return _make


@pytest.fixture
def options(make_options: Callable[..., ServiceOptions]) -> ServiceOptions:
    return make_options(retry_max=3, retry_delay=0.5)


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeDriver(DatabaseDriver):
    """DatabaseDriver recording calls instead of running tools."""

    kind = "fake"

    def __init__(self, options: ServiceOptions, stop_dependents=None, status=DatabaseStatus.NOT_FOUND):
        super().__init__(options, stop_dependents=stop_dependents)
        self.current = status
        self.calls: list[str] = []
        self.initialized_with: PersistedDatabaseConfig | None = None
        self.start_result = True

    def status(self) -> DatabaseStatus:
        return self.current

    def start(self) -> bool:
        self.calls.append("start")
        if self.start_result:
            self.current = DatabaseStatus.RUNNING
        return self.start_result

    def stop(self) -> None:
        self.calls.append("stop")
        if self.current == DatabaseStatus.RUNNING:
            self.current = DatabaseStatus.INACTIVE

    def _initialize(self, config: PersistedDatabaseConfig) -> bool:
        self.calls.append("initialize")
        self.initialized_with = config
        self.store.write(config)
        self.current = DatabaseStatus.RUNNING
        return True

    def _remove_data(self) -> None:
        self.calls.append("remove_data")
        self.current = DatabaseStatus.NOT_FOUND

    def location(self) -> str:
        return str(self.options.data_dir)


@pytest.fixture
def fake_driver_class() -> type[FakeDriver]:
    return FakeDriver


class ScriptedHealth:
    """Health check replaying results; the last one repeats."""

    def __init__(self, *states: HealthState, version: str = "1.4.0"):
        self.states = list(states)
        self.version = version
        self.calls = 0

    def __call__(self) -> HealthCheckResult:
        index = min(self.calls, len(self.states) - 1)
        self.calls += 1
        state = self.states[index]
        if state == HealthState.ONLINE:
            return HealthCheckResult(state, version=self.version)
        return HealthCheckResult(state, message=f"scripted {state.value}")


@pytest.fixture
def scripted_health() -> type[ScriptedHealth]:
    return ScriptedHealth


class SleepRecorder:
    """Injectable sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
