"""Interactive prompts.

Only this module talks to the terminal for input. Decisions about *whether*
to ask live in the orchestrator and the controller.
"""

from __future__ import annotations

import click
import questionary

from .webservice.bootstrap import WebServiceCredentials, generate_credentials

COMPONENT_CHOICES = ["all", "database", "webservice"]


class Prompter:
    """Ask the operator for confirmations, components and credentials."""

    def confirm(self, message: str) -> bool:
        return click.confirm(message, default=False)

    def choose_component(self) -> str:
        """Ask which component a command should act on.

        Raises:
            KeyboardInterrupt: If the operator cancels (Ctrl+C)
        """
        answer = questionary.select(
            "Which component?",
            choices=COMPONENT_CHOICES,
            default="all",
        ).ask()
        if answer is None:
            raise KeyboardInterrupt("Cancelled by user")
        return answer

    def ask_credentials(self, default_username: str) -> WebServiceCredentials:
        """Ask for the admin username and password (blank password = generate).

        Raises:
            KeyboardInterrupt: If the operator cancels (Ctrl+C)
        """
        username = questionary.text("Admin username:", default=default_username).ask()
        if username is None:
            raise KeyboardInterrupt("Cancelled by user")
        password = questionary.password("Admin password (leave blank to generate):").ask()
        if password is None:
            raise KeyboardInterrupt("Cancelled by user")
        return generate_credentials(username.strip() or default_username, password or None)
