"""Escalating process termination.

On POSIX a process first receives SIGTERM, gets a short grace window to shut
down, and is sent SIGKILL only if it is still alive afterwards. Windows has
no graceful signal to offer, so the process is force-killed in one step.
"""

import logging
import os
import signal
import sys
import time
from collections.abc import Callable

import psutil

from portkill.errors import TerminationError

logger = logging.getLogger(__name__)

GRACE_PERIOD = 0.5


def is_running(pid: int) -> bool:
    """
    Check the process table for ``pid``.

    Zombies count as dead: they have exited and only wait to be reaped.

    Raises:
        TerminationError: The process table could not be queried for ``pid``.
    """
    try:
        proc = psutil.Process(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.Error as e:
        raise TerminationError(f"cannot check whether PID {pid} is running: {e}") from e


def process_name(pid: int) -> str | None:
    """Return the command name of ``pid``, or None if it cannot be read."""
    try:
        return psutil.Process(pid).name()
    except psutil.Error:
        return None


def listening_ports(pid: int) -> set[int]:
    """Return the TCP ports ``pid`` is listening on (empty if unknown)."""
    try:
        connections = psutil.Process(pid).net_connections(kind="tcp")
    except psutil.Error:
        return set()
    return {
        conn.laddr.port
        for conn in connections
        if conn.status == psutil.CONN_LISTEN and conn.laddr
    }


class Terminator:
    """
    Terminates a single process by escalating signals.

    The contract is best effort: ``terminate`` promises that escalation was
    attempted, not that the process is gone.
    """

    def __init__(
        self,
        grace_period: float = GRACE_PERIOD,
        sleep: Callable[[float], None] = time.sleep,
        windows: bool | None = None,
    ) -> None:
        """
        Initialize the Terminator.

        Args:
            grace_period: Seconds between the graceful and the forced signal.
            sleep: Function used to wait out the grace window.
            windows: Force the Windows flow on or off. Defaults to the
                running platform.
        """
        self._grace_period = max(0.0, grace_period)
        self._sleep = sleep
        self._windows = sys.platform == "win32" if windows is None else windows

    @property
    def grace_period(self) -> float:
        """Get the grace window in seconds."""
        return self._grace_period

    def terminate(self, pid: int) -> None:
        """
        Stop ``pid``.

        Delivery failures are logged and never raised.

        Raises:
            TerminationError: ``pid`` is not a positive process ID, or its
                liveness could not be determined.
        """
        # os.kill treats 0 and negative ids as process groups.
        if pid <= 0:
            raise TerminationError(f"refusing to signal PID {pid}")

        if self._windows:
            self._force_kill_windows(pid)
            return

        logger.info("Killing process PID: %d with SIGTERM", pid)
        if self._send(pid, signal.SIGTERM):
            logger.info("SIGTERM sent to PID: %d", pid)

        self._sleep(self._grace_period)

        if not is_running(pid):
            logger.info("Process %d terminated gracefully", pid)
            return

        logger.info("Process %d still running, sending SIGKILL", pid)
        if self._send(pid, signal.SIGKILL):
            logger.info("SIGKILL sent to PID: %d", pid)

    def _send(self, pid: int, sig: int) -> bool:
        """Deliver ``sig`` to ``pid``, returning False if delivery failed."""
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            logger.warning(
                "Failed to send %s to PID %d (process may already be terminated)",
                signal.Signals(sig).name,
                pid,
            )
            return False
        except OSError as e:
            logger.warning(
                "Failed to send %s to PID %d: %s (process may be protected)",
                signal.Signals(sig).name,
                pid,
                e,
            )
            return False
        return True

    def _force_kill_windows(self, pid: int) -> None:
        logger.info("Killing process PID: %d on Windows", pid)
        try:
            psutil.Process(pid).kill()
        except psutil.NoSuchProcess:
            logger.warning("Process %d is already gone", pid)
        except psutil.Error as e:
            logger.warning("Failed to kill process PID %d: %s", pid, e)
        else:
            logger.info("Successfully killed process PID: %d", pid)


def terminate(pid: int, grace_period: float = GRACE_PERIOD) -> None:
    """Terminate ``pid`` with the default escalation policy."""
    Terminator(grace_period=grace_period).terminate(pid)
