"""Logging configuration for tessera-cli.

Operator-facing messages go through click/rich; structlog events are
diagnostics. They are silent below WARNING unless -v is given, and
--log-file redirects them to a JSON-lines file instead of stderr.
"""

import logging
import sys
from pathlib import Path

import structlog

# Verbosity count (-v, -vv) to log level
VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def level_for_verbosity(verbose: int) -> int:
    """Map a -v count to a logging level."""
    return VERBOSITY_LEVELS.get(verbose, logging.DEBUG)


def configure_logging(verbose: int = 0, log_file: str | Path | None = None) -> Path | None:
    """Configure standard logging and structlog for one invocation.

    Args:
        verbose: Number of -v flags given.
        log_file: Optional path; ~ is expanded and parent directories are
            created. Events are written there as JSON instead of to stderr.

    Returns:
        The resolved log file path, or None when logging to stderr.
    """
    log_level = level_for_verbosity(verbose)

    log_path: Path | None = None
    handler: logging.Handler
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    logging.basicConfig(level=log_level, handlers=[handler], format="%(message)s", force=True)

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if log_path is not None:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return log_path


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)
