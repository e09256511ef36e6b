"""Lifecycle orchestration across the database and the web service.

The module has two layers:

- Pure decisions (resolve_components, order_for, confirmation_for): which
  components a command touches, in which order, and whether the operator
  must confirm. These never do I/O.
- Orchestrator: executes a command against a DatabaseDriver and a
  WebServiceController, asking the Prompter only when a decision says so.

Ordering: the database comes first for init/start (the web service cannot
come online without it) and last for stop/delete (stop the dependent
service before removing its backing store).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING

import click

from .database import ConfigStore, DatabaseDriver, DatabaseStatus, create_driver, generate_password
from .errors import StateError
from .formatters import print_status
from .shared.logging import get_logger
from .webservice import WebServiceController, WebServiceStatus
from .webservice.tls import tls_material_present

if TYPE_CHECKING:
    from .config import ServiceOptions
    from .prompts import Prompter

logger = get_logger(__name__)


class Component(Enum):
    """A managed service."""

    DATABASE = "database"
    WEBSERVICE = "webservice"


class Command(Enum):
    """Operator commands."""

    INIT = "init"
    REINIT = "reinit"
    DELETE = "delete"
    STATUS = "status"
    START = "start"
    STOP = "stop"
    RESTART = "restart"


ALL_COMPONENTS = [Component.DATABASE, Component.WEBSERVICE]
DESTRUCTIVE_COMMANDS = (Command.DELETE, Command.REINIT)

DriverFactory = Callable[["ServiceOptions", Callable[[], None]], DatabaseDriver]
ControllerFactory = Callable[["ServiceOptions", "Prompter | None"], WebServiceController]


# ----------------------------------------------------------------------
# Decisions
# ----------------------------------------------------------------------


def resolve_components(command: Command, choice: str | None) -> list[Component] | None:
    """Resolve the requested component choice.

    Returns:
        The components to act on, or None if the operator must be asked.
        Status without a choice means all components.
    """
    if choice is None:
        return list(ALL_COMPONENTS) if command == Command.STATUS else None
    if choice == "all":
        return list(ALL_COMPONENTS)
    return [Component(choice)]


def order_for(command: Command, components: list[Component]) -> list[Component]:
    """Database first, except for stop and delete which go web service first."""
    ordered = [c for c in ALL_COMPONENTS if c in components]
    if command in (Command.STOP, Command.DELETE):
        ordered.reverse()
    return ordered


def confirmation_for(
    command: Command,
    components: list[Component],
    db_status: DatabaseStatus | None,
    db_location: str | None,
    ws_status: WebServiceStatus | None,
    tls_present: bool,
    assume_yes: bool,
) -> str | None:
    """Decide whether a destructive command needs confirmation.

    Returns:
        The question to ask, or None when nothing would be destroyed, the
        command is not destructive, or the operator already said yes.
    """
    if assume_yes or command not in DESTRUCTIVE_COMMANDS:
        return None

    targets = []
    if Component.DATABASE in components and db_status not in (None, DatabaseStatus.NOT_FOUND):
        targets.append(f"the database at {db_location}")
    if Component.WEBSERVICE in components and (
        tls_present or ws_status not in (None, WebServiceStatus.NO_PID_FILE)
    ):
        targets.append("the web service TLS key and certificate")
    if not targets:
        return None

    action = "delete" if command == Command.DELETE else "delete and reinitialize"
    return f"This will {action} {' and '.join(targets)}. Continue?"


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------


def default_driver_factory(
    options: ServiceOptions, stop_dependents: Callable[[], None]
) -> DatabaseDriver:
    return create_driver(options, stop_dependents=stop_dependents)


class Orchestrator:
    """Run one command against one or both components."""

    def __init__(
        self,
        options: ServiceOptions,
        prompter: Prompter | None = None,
        driver_factory: DriverFactory = default_driver_factory,
        controller_factory: ControllerFactory = WebServiceController,
    ):
        self.options = options
        self.prompter = prompter
        self.driver_factory = driver_factory
        self.controller_factory = controller_factory

    def execute(self, command: Command, choice: str | None = None) -> bool:
        """Execute a command.

        Args:
            command: What to do.
            choice: "database", "webservice", "all", or None to resolve
                interactively (all when defaults are accepted).

        Returns:
            True if every step succeeded.

        Raises:
            TesseraError: For environment, state, trust and protocol errors.
        """
        components = resolve_components(command, choice)
        if components is None:
            if self.options.accept_defaults or self.prompter is None:
                components = list(ALL_COMPONENTS)
            else:
                components = resolve_components(command, self.prompter.choose_component())

        options = self.options
        if command in DESTRUCTIVE_COMMANDS:
            options = replace(options, delete_data=True)

        webservice = self.controller_factory(options, self.prompter)
        driver = None
        if Component.DATABASE in components:
            driver = self.driver_factory(options, webservice.stop)

        logger.info(
            "execute", command=command.value, components=[c.value for c in components]
        )
        run = _Run(options, components, driver, webservice, self.prompter)
        return run.dispatch(command)


class _Run:
    """State of one execute() call."""

    def __init__(
        self,
        options: ServiceOptions,
        components: list[Component],
        driver: DatabaseDriver | None,
        webservice: WebServiceController,
        prompter: Prompter | None,
    ):
        self.options = options
        self.components = components
        self.driver = driver
        self.webservice = webservice
        self.prompter = prompter

    def dispatch(self, command: Command) -> bool:
        handlers = {
            Command.STATUS: self.status,
            Command.INIT: self.init,
            Command.START: self.start,
            Command.STOP: self.stop,
            Command.RESTART: self.restart,
            Command.DELETE: self.delete,
            Command.REINIT: self.reinit,
        }
        return handlers[command]()

    def ordered(self, command: Command) -> list[Component]:
        return order_for(command, self.components)

    # ------------------------------------------------------------------

    def status(self) -> bool:
        for component in self.ordered(Command.STATUS):
            if component == Component.DATABASE:
                db_status = self.driver.status()
                print_status("database", db_status.value, self.driver.describe_status(db_status))
            else:
                state = self.webservice.status()
                print_status("webservice", state.status.value, state.message)
        return True

    def _require_database_config(self) -> None:
        if not ConfigStore(self.options.db_config_file).exists():
            raise StateError(
                "The database is not initialized; the web service has nothing to connect to",
                hint="Run: tessera-services init database",
            )

    def init(self) -> bool:
        for component in self.ordered(Command.INIT):
            if component == Component.DATABASE:
                if not self.driver.init(generate_password(), generate_password()):
                    return False
            else:
                state = self.webservice.status()
                if state.status == WebServiceStatus.RUNNING:
                    click.echo(f"Web service is already running (PID {state.pid}). Nothing to initialize.")
                    continue
                self._require_database_config()
                if not self.webservice.init():
                    return False
        return True

    def start(self) -> bool:
        for component in self.ordered(Command.START):
            if component == Component.DATABASE:
                db_status = self.driver.status()
                if db_status == DatabaseStatus.RUNNING:
                    click.echo("Database is already running.")
                elif db_status in (DatabaseStatus.NOT_FOUND, DatabaseStatus.NEEDS_INIT):
                    raise StateError(
                        self.driver.describe_status(db_status),
                        hint="Run: tessera-services init database",
                    )
                elif not self.driver.start():
                    return False
            else:
                state = self.webservice.status()
                if state.status == WebServiceStatus.RUNNING:
                    click.echo(f"Web service is already running (PID {state.pid}).")
                    continue
                self._require_database_config()
                if not self.webservice.start():
                    return False
        return True

    def stop(self) -> bool:
        for component in self.ordered(Command.STOP):
            if component == Component.DATABASE:
                self.driver.stop()
            else:
                self.webservice.stop()
        return True

    def restart(self) -> bool:
        self.stop()
        return self.start()

    def _confirm(self, command: Command) -> bool:
        db_status = self.driver.status() if self.driver else None
        ws_state = self.webservice.status()
        question = confirmation_for(
            command,
            self.components,
            db_status,
            self.driver.location() if self.driver else None,
            ws_state.status,
            tls_material_present(self.options),
            self.options.assume_yes,
        )
        if question is None:
            return True
        if self.prompter is None:
            raise StateError(
                "Confirmation required for a destructive operation",
                hint="Re-run with --yes to confirm.",
            )
        if not self.prompter.confirm(question):
            click.echo("Aborted.")
            return False
        return True

    def delete(self, confirmed: bool = False) -> bool:
        if not confirmed and not self._confirm(Command.DELETE):
            return False
        for component in self.ordered(Command.DELETE):
            if component == Component.DATABASE:
                self.driver.delete()
            else:
                self.webservice.delete()
        return True

    def reinit(self) -> bool:
        if not self._confirm(Command.REINIT):
            return False
        self.delete(confirmed=True)
        return self.init()
