"""Unit tests for command orchestration across both components."""

from unittest.mock import MagicMock

import pytest

from tessera_cli.database import DatabaseStatus
from tessera_cli.errors import StateError
from tessera_cli.orchestrator import (
    Command,
    Component,
    Orchestrator,
    confirmation_for,
    order_for,
    resolve_components,
)
from tessera_cli.webservice.daemon import WebServiceState, WebServiceStatus

BOTH = [Component.DATABASE, Component.WEBSERVICE]


class FakeController:
    """WebServiceController stand-in sharing an event log with the driver."""

    def __init__(self, options, prompter, events, status=WebServiceStatus.NO_PID_FILE):
        self.options = options
        self.prompter = prompter
        self.events = events
        self.current = status

    def status(self):
        pid = 4242 if self.current == WebServiceStatus.RUNNING else None
        return WebServiceState(self.current, self.options.pid_file, pid)

    def init(self):
        self.events.append("ws_init")
        self.current = WebServiceStatus.RUNNING
        return True

    def start(self, expect_authenticated=True):
        self.events.append("ws_start")
        self.current = WebServiceStatus.RUNNING
        return True

    def stop(self):
        self.events.append("ws_stop")
        self.current = WebServiceStatus.NO_PID_FILE

    def delete(self):
        self.events.append("ws_delete")
        self.current = WebServiceStatus.NO_PID_FILE


class Harness:
    """Builds an Orchestrator wired to fakes and keeps them for inspection."""

    def __init__(self, options, fake_driver_class, db_status=DatabaseStatus.NOT_FOUND,
                 ws_status=WebServiceStatus.NO_PID_FILE, prompter=None):
        self.events: list[str] = []
        self.db_status = db_status
        self.ws_status = ws_status
        self.driver = None
        self.controller = None
        self.orchestrator = Orchestrator(
            options,
            prompter=prompter,
            driver_factory=self._driver,
            controller_factory=self._controller,
        )
        self.fake_driver_class = fake_driver_class

    def _driver(self, options, stop_dependents):
        self.driver = self.fake_driver_class(options, stop_dependents, status=self.db_status)
        self.driver.calls = self.events
        return self.driver

    def _controller(self, options, prompter):
        self.controller = FakeController(options, prompter, self.events, self.ws_status)
        return self.controller

    def execute(self, command, choice="all"):
        return self.orchestrator.execute(command, choice)


@pytest.fixture
def harness(options, fake_driver_class):
    def _make(**kwargs):
        opts = kwargs.pop("options", options)
        return Harness(opts, fake_driver_class, **kwargs)

    return _make


# =============================================================================
# Decisions
# =============================================================================


@pytest.mark.cli_unit
class TestResolveComponents:
    """Tests for resolve_components."""

    def test_status_defaults_to_all(self):
        assert resolve_components(Command.STATUS, None) == BOTH

    def test_other_commands_ask(self):
        assert resolve_components(Command.INIT, None) is None

    def test_all(self):
        assert resolve_components(Command.STOP, "all") == BOTH

    def test_single(self):
        assert resolve_components(Command.START, "webservice") == [Component.WEBSERVICE]


@pytest.mark.cli_unit
class TestOrderFor:
    """Tests for order_for."""

    @pytest.mark.parametrize("command", [Command.INIT, Command.START, Command.STATUS])
    def test_database_first(self, command):
        assert order_for(command, [Component.WEBSERVICE, Component.DATABASE]) == BOTH

    @pytest.mark.parametrize("command", [Command.STOP, Command.DELETE])
    def test_webservice_first(self, command):
        assert order_for(command, BOTH) == [Component.WEBSERVICE, Component.DATABASE]


@pytest.mark.cli_unit
class TestConfirmationFor:
    """Tests for confirmation_for."""

    def test_non_destructive_never_asks(self):
        assert confirmation_for(
            Command.STOP, BOTH, DatabaseStatus.RUNNING, "/db", WebServiceStatus.RUNNING, True, False
        ) is None

    def test_yes_skips_question(self):
        assert confirmation_for(
            Command.DELETE, BOTH, DatabaseStatus.RUNNING, "/db", WebServiceStatus.RUNNING, True, True
        ) is None

    def test_nothing_to_destroy(self):
        assert confirmation_for(
            Command.DELETE,
            BOTH,
            DatabaseStatus.NOT_FOUND,
            "/db",
            WebServiceStatus.NO_PID_FILE,
            False,
            False,
        ) is None

    def test_database_data_is_named(self):
        question = confirmation_for(
            Command.DELETE,
            [Component.DATABASE],
            DatabaseStatus.INACTIVE,
            "/srv/db",
            None,
            True,
            False,
        )
        assert question == "This will delete the database at /srv/db. Continue?"

    def test_reinit_names_tls(self):
        question = confirmation_for(
            Command.REINIT,
            [Component.WEBSERVICE],
            None,
            None,
            WebServiceStatus.NO_PID_FILE,
            True,
            False,
        )
        assert "delete and reinitialize" in question
        assert "TLS key and certificate" in question


# =============================================================================
# Execution
# =============================================================================


@pytest.mark.cli_unit
class TestInit:
    """Tests for init sequencing."""

    def test_database_then_webservice(self, harness):
        h = harness()

        assert h.execute(Command.INIT) is True

        assert h.events == ["initialize", "ws_init"]
        config = h.driver.initialized_with
        assert config.primary.password != config.test.password

    def test_database_failure_skips_webservice(self, harness):
        h = harness(db_status=DatabaseStatus.INACTIVE)
        h.orchestrator.driver_factory = lambda options, stop: _failing_start(h, options, stop)

        assert h.execute(Command.INIT) is False
        assert "ws_init" not in h.events

    def test_already_running_is_success(self, harness, capsys):
        h = harness(db_status=DatabaseStatus.RUNNING, ws_status=WebServiceStatus.RUNNING)

        assert h.execute(Command.INIT) is True

        assert h.events == []
        assert "already running" in capsys.readouterr().out

    def test_webservice_requires_database_config(self, harness):
        h = harness()
        with pytest.raises(StateError, match="not initialized"):
            h.execute(Command.INIT, "webservice")
        assert h.driver is None

    def test_webservice_alone_after_database(self, harness, fake_driver_class, options):
        fake_driver_class(options).init("a", "b")
        h = harness()

        assert h.execute(Command.INIT, "webservice") is True
        assert h.events == ["ws_init"]


def _failing_start(h, options, stop_dependents):
    driver = h._driver(options, stop_dependents)
    driver.start_result = False
    return driver


@pytest.mark.cli_unit
class TestStartStop:
    """Tests for start, stop and restart."""

    def test_start_uninitialized_database(self, harness):
        h = harness(db_status=DatabaseStatus.NOT_FOUND)

        with pytest.raises(StateError) as exc_info:
            h.execute(Command.START)
        assert "init database" in exc_info.value.hint
        assert h.events == []

    def test_start_order(self, harness, fake_driver_class, options):
        fake_driver_class(options).init("a", "b")
        h = harness(db_status=DatabaseStatus.INACTIVE)

        assert h.execute(Command.START) is True
        assert h.events == ["start", "ws_start"]

    def test_stop_order(self, harness):
        h = harness(db_status=DatabaseStatus.RUNNING, ws_status=WebServiceStatus.RUNNING)

        assert h.execute(Command.STOP) is True
        assert h.events == ["ws_stop", "stop"]

    def test_restart(self, harness, fake_driver_class, options):
        fake_driver_class(options).init("a", "b")
        h = harness(db_status=DatabaseStatus.RUNNING, ws_status=WebServiceStatus.RUNNING)

        assert h.execute(Command.RESTART) is True
        assert h.events == ["ws_stop", "stop", "start", "ws_start"]


@pytest.mark.cli_unit
class TestDestructive:
    """Tests for delete and reinit."""

    def test_delete_with_yes(self, harness, make_options):
        h = harness(
            options=make_options(assume_yes=True),
            db_status=DatabaseStatus.RUNNING,
            ws_status=WebServiceStatus.RUNNING,
        )

        assert h.execute(Command.DELETE) is True

        assert h.events[0] == "ws_delete"
        assert h.events[-1] == "remove_data"
        assert h.controller.options.delete_data is True
        assert h.driver.options.delete_data is True

    def test_database_delete_stops_webservice_first(self, harness, make_options):
        h = harness(options=make_options(assume_yes=True), db_status=DatabaseStatus.RUNNING)

        h.execute(Command.DELETE, "database")

        assert h.events == ["ws_stop", "stop", "remove_data"]

    def test_declined(self, harness):
        prompter = MagicMock()
        prompter.confirm.return_value = False
        h = harness(db_status=DatabaseStatus.RUNNING, prompter=prompter)

        assert h.execute(Command.DELETE) is False

        assert "remove_data" not in h.events
        question = prompter.confirm.call_args.args[0]
        assert question.startswith("This will delete the database at")

    def test_confirmation_required_without_prompter(self, harness):
        h = harness(db_status=DatabaseStatus.RUNNING)

        with pytest.raises(StateError) as exc_info:
            h.execute(Command.DELETE)
        assert "--yes" in exc_info.value.hint

    def test_nothing_to_delete_does_not_ask(self, harness):
        h = harness()
        assert h.execute(Command.DELETE) is True

    def test_reinit_deletes_then_initializes(self, harness, make_options):
        h = harness(options=make_options(assume_yes=True), db_status=DatabaseStatus.INACTIVE)

        assert h.execute(Command.REINIT) is True

        assert h.events.index("remove_data") < h.events.index("initialize")
        assert h.events[-1] == "ws_init"


@pytest.mark.cli_unit
class TestComponentPrompt:
    """Tests for interactive component selection."""

    def test_prompter_chooses(self, harness):
        prompter = MagicMock()
        prompter.choose_component.return_value = "database"
        h = harness(prompter=prompter)

        h.execute(Command.INIT, None)

        assert h.events == ["initialize"]

    def test_accept_defaults_means_all(self, harness, make_options):
        prompter = MagicMock()
        h = harness(options=make_options(accept_defaults=True), prompter=prompter)

        h.execute(Command.INIT, None)

        prompter.choose_component.assert_not_called()
        assert h.events == ["initialize", "ws_init"]


@pytest.mark.cli_unit
class TestStatus:
    """Tests for status output."""

    def test_prints_both(self, harness, capsys):
        h = harness(ws_status=WebServiceStatus.RUNNING)

        assert h.execute(Command.STATUS, None) is True

        out = capsys.readouterr().out
        assert "database" in out and "not_found" in out
        assert "webservice" in out and "running as PID 4242" in out
