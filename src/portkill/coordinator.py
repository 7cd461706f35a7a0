"""Serialises kill requests and runs them off the UI thread."""

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from portkill.actions import ActionKind, MenuAction
from portkill.discovery import discover
from portkill.errors import CoordinationConflict, TerminationError
from portkill.models import IgnoreSet, PortSet, ProcessRecord
from portkill.snapshot import SnapshotStore
from portkill.terminator import Terminator, listening_ports, process_name

logger = logging.getLogger(__name__)

SETTLE_DELAY = 6.0
STARTUP_DELAY = 0.1


def settle_delay_for(refresh_interval: float) -> float:
    """Settle delay that outlasts at least one refresh of ``refresh_interval``."""
    return max(SETTLE_DELAY, refresh_interval + 1.0)


class KillState:
    """
    Shared "termination in progress" flag.

    Handed to both the coordinator and the refresh loop; the refresh loop
    only reads it to hold back menu rebuilds while processes are dying.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_progress = False
        self._updated_at = time.monotonic()

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    @property
    def updated_at(self) -> float:
        """Monotonic time the flag last changed."""
        with self._lock:
            return self._updated_at

    def begin(self) -> None:
        """
        Mark a kill sequence as started.

        Raises:
            CoordinationConflict: Another sequence is still running.
        """
        with self._lock:
            if self._in_progress:
                raise CoordinationConflict("a kill sequence is already in progress")
            self._in_progress = True
            self._updated_at = time.monotonic()

    def finish(self) -> None:
        """Mark the running kill sequence as done."""
        with self._lock:
            self._in_progress = False
            self._updated_at = time.monotonic()


@dataclass(slots=True)
class KillResult:
    """Outcome of one kill sequence."""

    attempted: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: str | None = None

    @property
    def killed(self) -> int:
        return len(self.attempted) - len(self.failed)

    def summary(self) -> str:
        """One log line describing the outcome, shown by the UI."""
        if self.skipped:
            return f"Nothing killed: {self.skipped}"
        text = f"Killed {self.killed} of {len(self.attempted)} process(es)"
        if self.failed:
            text += f"; failed: {', '.join(str(pid) for pid in self.failed)}"
        return text


class KillCoordinator:
    """
    Runs kill sequences one at a time.

    Requests arriving while a sequence is running are logged and dropped,
    never queued. Ignore rules are evaluated again at kill time because the
    snapshot the user acted on may be several seconds old.
    """

    def __init__(
        self,
        ports: PortSet,
        ignore: IgnoreSet,
        state: KillState | None = None,
        store: SnapshotStore | None = None,
        terminator: Terminator | None = None,
        discover_fn: Callable[[PortSet, IgnoreSet], Mapping[int, ProcessRecord]] = discover,
        settle_delay: float = SETTLE_DELAY,
        startup_delay: float = STARTUP_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        on_result: Callable[[KillResult], None] | None = None,
    ) -> None:
        """
        Initialize the KillCoordinator.

        Args:
            ports: Ports a kill-all sweeps.
            ignore: Ports and process names that are never killed.
            state: Shared kill flag. A private one is created if omitted.
            store: Latest snapshot, used to map a port to its PID.
            terminator: Performs the per-process termination.
            discover_fn: Discovery used to find kill-all candidates.
            settle_delay: Seconds to keep the flag set after a sequence, so
                refreshes do not race processes that are still exiting.
            startup_delay: Seconds a worker waits before it starts, letting
                the menu that triggered it close.
            sleep: Function used for both delays.
            on_result: Called with the result of every finished sequence.
        """
        self._ports = ports
        self._ignore = ignore
        self._state = state if state is not None else KillState()
        self._store = store if store is not None else SnapshotStore()
        self._terminator = terminator if terminator is not None else Terminator()
        self._discover = discover_fn
        self._settle_delay = settle_delay
        self._startup_delay = startup_delay
        self._sleep = sleep
        self._on_result = on_result

    @property
    def state(self) -> KillState:
        return self._state

    def request_kill_all(self) -> KillResult | None:
        """Kill every non-ignored listener in the port set, in this thread.

        Returns None if the request was dropped or the sequence crashed.
        """
        if not self._try_begin():
            return None
        return self._run(self._kill_all)

    def request_kill_one(self, pid: int) -> KillResult | None:
        """Kill ``pid`` unless it is ignored, in this thread.

        Returns None if the request was dropped or the sequence crashed.
        """
        if not self._try_begin():
            return None
        return self._run(self._kill_one, pid)

    def dispatch(self, action: MenuAction) -> threading.Thread | None:
        """
        Start the kill sequence ``action`` asks for on a worker thread.

        UNKNOWN actions are treated as KILL_ALL. QUIT is left to the caller.
        Returns the started worker, or None if nothing was started.
        """
        if action.kind is ActionKind.QUIT:
            return None

        if action.kind is ActionKind.KILL_PROCESS:
            record = self._store.get(action.port) if action.port is not None else None
            if record is None:
                logger.warning("No process known on port %s, nothing to kill", action.port)
                return None
            logger.info("Kill requested for port %d (PID %d)", record.port, record.pid)
            work, args = self._kill_one, (record.pid,)
        else:
            if action.kind is ActionKind.UNKNOWN:
                logger.info(
                    "Unknown menu item clicked: %s, defaulting to kill all", action.event_id
                )
            work, args = self._kill_all, ()

        if not self._try_begin():
            return None
        worker = threading.Thread(
            target=self._work,
            args=(work, *args),
            daemon=True,
            name="KillWorker",
        )
        worker.start()
        return worker

    def _try_begin(self) -> bool:
        try:
            self._state.begin()
        except CoordinationConflict as e:
            logger.info("Kill request received but %s, ignoring", e)
            return False
        return True

    def _work(self, work: Callable[..., KillResult], *args: int) -> None:
        self._sleep(self._startup_delay)
        self._run(work, *args)

    def _run(self, work: Callable[..., KillResult], *args: int) -> KillResult | None:
        result = None
        try:
            result = work(*args)
            logger.info(result.summary())
            if self._on_result is not None:
                self._on_result(result)
        except Exception:
            logger.exception("Failed to kill processes")
        finally:
            self._sleep(self._settle_delay)
            self._state.finish()
        return result

    def _kill_all(self) -> KillResult:
        result = KillResult()
        records = self._discover(self._ports, self._ignore)
        if not records:
            logger.info("No processes found to kill (all were ignored or none found)")
            result.skipped = "no processes found"
            return result

        pids = list(dict.fromkeys(records[port].pid for port in sorted(records)))
        logger.info("Found %d processes to kill (after filtering ignored processes)", len(pids))
        for pid in pids:
            self._terminate(pid, result)
        logger.info("Finished killing all processes")
        return result

    def _kill_one(self, pid: int) -> KillResult:
        result = KillResult()
        name = process_name(pid)
        if name is not None and name in self._ignore.process_names:
            logger.info("Ignoring process %s (PID %d) - process name is in ignore list", name, pid)
            result.skipped = f"{name} is ignored"
            return result

        ignored_ports = sorted(listening_ports(pid) & self._ignore.ports)
        if ignored_ports:
            logger.info(
                "Ignoring process on port %d (PID %d) - port is in ignore list",
                ignored_ports[0],
                pid,
            )
            result.skipped = f"port {ignored_ports[0]} is ignored"
            return result

        self._terminate(pid, result)
        return result

    def _terminate(self, pid: int, result: KillResult) -> None:
        logger.info("Attempting to kill process PID: %d", pid)
        result.attempted.append(pid)
        try:
            self._terminator.terminate(pid)
        except TerminationError as e:
            logger.error("Failed to kill process %d: %s", pid, e)
            result.failed.append(pid)
        else:
            logger.info("Successfully killed process PID: %d", pid)
