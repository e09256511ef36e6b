"""CLI commands."""

from .services import SERVICE_COMMANDS, run_command

__all__ = ["SERVICE_COMMANDS", "run_command"]
