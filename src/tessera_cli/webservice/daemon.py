"""Web service daemon process management.

Handles:
- Status derived from the PID file and process liveness (recomputed on
  every call, never cached)
- Launching the daemon detached from the terminal
- Stopping via SIGTERM with a SIGKILL fallback
- Stale PID file cleanup
"""

import os
import shutil
import signal
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..errors import PrerequisiteError
from ..shared.logging import get_logger

logger = get_logger(__name__)

STOP_GRACE_SECONDS = 10.0
STOP_POLL_SECONDS = 0.1


class WebServiceStatus(Enum):
    """PID-file derived status of the web service."""

    RUNNING = "running"  # PID file parsable and process alive
    INACTIVE = "inactive"  # PID file present, process gone
    NO_PID_FILE = "no_pid_file"  # Never started or cleanly stopped


@dataclass
class WebServiceState:
    """Observed web service state."""

    status: WebServiceStatus
    pid_file: Path
    pid: int | None = None

    @property
    def message(self) -> str:
        if self.status == WebServiceStatus.RUNNING:
            return f"Web service is running as PID {self.pid}"
        if self.status == WebServiceStatus.INACTIVE:
            if self.pid is None:
                return f"PID file found at {self.pid_file}, but it does not contain a process id"
            return (
                f"PID file found at {self.pid_file}, "
                f"but no active process running as PID {self.pid}"
            )
        return f"No PID file found at {self.pid_file}; web service is not running"


def probe_process(pid: int) -> bool:
    """Check process liveness with signal 0.

    Only "no such process" counts as dead. Any other failure, including
    permission denied for a process owned by another user, counts as alive.
    """
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except OSError:
        return True
    return True


def reap_child(pid: int) -> bool:
    """Collect the exit status of a daemon launched by this process.

    Returns:
        True if pid was our child and has exited. False if it is still
        running or belongs to another process tree.
    """
    try:
        reaped, _ = os.waitpid(pid, os.WNOHANG)
    except ChildProcessError:
        return False
    return reaped == pid


def read_pid(pid_file: Path) -> int | None:
    """Read the process id from a PID file (None if unreadable)."""
    try:
        pid = int(pid_file.read_text().strip())
    except (ValueError, OSError):
        return None
    return pid if pid > 0 else None


def read_status(pid_file: Path) -> WebServiceState:
    """Derive the web service state. Never raises."""
    if not pid_file.exists():
        return WebServiceState(WebServiceStatus.NO_PID_FILE, pid_file)

    pid = read_pid(pid_file)
    if pid is None or not probe_process(pid):
        return WebServiceState(WebServiceStatus.INACTIVE, pid_file, pid)
    return WebServiceState(WebServiceStatus.RUNNING, pid_file, pid)


def remove_stale_pid_file(pid_file: Path) -> bool:
    """Remove a PID file left behind by a dead process.

    Returns:
        True if a file was removed.
    """
    if pid_file.exists():
        pid_file.unlink(missing_ok=True)
        logger.info("stale_pid_file_removed", pid_file=str(pid_file))
        return True
    return False


def check_server_binary(server_bin: str) -> str:
    """Resolve the web service executable.

    Raises:
        PrerequisiteError: If the executable cannot be found.
    """
    path = shutil.which(server_bin)
    if path is None:
        raise PrerequisiteError(
            f"{server_bin} not found",
            hint="Install the tessera server or set TESSERA_SERVER_BIN.",
            missing=[server_bin],
        )
    return path


def launch(command: Sequence[str], pid_file: Path, log_file: Path) -> int:
    """Start the daemon in its own session and record its PID.

    Output (stdout and stderr) is appended to the log file.

    Returns:
        PID of the launched process.
    """
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    with open(log_file, "a") as log_fd:
        process = subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=log_fd,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )

    pid_file.write_text(str(process.pid))
    logger.info("daemon_launched", pid=process.pid, log_file=str(log_file))
    return process.pid


def terminate(
    pid: int,
    pid_file: Path,
    grace_seconds: float = STOP_GRACE_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Stop the daemon via SIGTERM.

    Waits up to grace_seconds for graceful shutdown, then force-kills.
    The PID file is removed either way.

    Returns:
        True if the process exited gracefully, False if it was killed.
    """
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pid_file.unlink(missing_ok=True)
        return True

    for _ in range(int(grace_seconds / STOP_POLL_SECONDS)):
        sleep(STOP_POLL_SECONDS)
        if reap_child(pid) or not probe_process(pid):
            pid_file.unlink(missing_ok=True)
            logger.info("daemon_stopped", pid=pid)
            return True

    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass  # Already dead

    pid_file.unlink(missing_ok=True)
    logger.warning("daemon_killed", pid=pid)
    return False
