"""Periodic port discovery for portkill."""

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from queue import Queue

from portkill.discovery import discover
from portkill.docker import attach_containers, list_containers
from portkill.models import IgnoreSet, PortSet, ProcessRecord, StatusInfo
from portkill.snapshot import SnapshotStore

logger = logging.getLogger(__name__)

POLL_RATE = 5.0
MENU_COOLDOWN = 10.0


@dataclass(slots=True)
class PortSnapshot:
    """Result of one discovery cycle."""

    records: dict[int, ProcessRecord]
    status: StatusInfo
    taken_at: float

    @property
    def count(self) -> int:
        return len(self.records)


class PortMonitor:
    """
    Port monitor that discovers listening processes on a fixed interval.

    Runs in a separate daemon thread, stores every snapshot in a
    SnapshotStore and pushes it to a thread-safe Queue. A failing discovery
    cycle degrades to an empty snapshot instead of stopping the loop.
    """

    def __init__(
        self,
        update_queue: Queue[PortSnapshot],
        ports: PortSet,
        ignore: IgnoreSet,
        store: SnapshotStore | None = None,
        poll_rate: float = POLL_RATE,
        docker: bool = False,
        discover_fn: Callable[[PortSet, IgnoreSet], Mapping[int, ProcessRecord]] = discover,
    ) -> None:
        """
        Initialize the PortMonitor.

        Args:
            update_queue: Thread-safe queue to push snapshots to.
            ports: Ports to watch.
            ignore: Ports and process names left out of every snapshot.
            store: Where the latest snapshot is kept for other threads.
            poll_rate: How often to poll (in seconds). Default 5.0s.
            docker: Attribute ports to Docker containers.
            discover_fn: Discovery implementation.
        """
        self._queue = update_queue
        self._ports = ports
        self._ignore = ignore
        self._store = store if store is not None else SnapshotStore()
        self._poll_rate = max(0.1, poll_rate)
        self._docker = docker
        self._discover = discover_fn
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="PortMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            self._queue.put(self.collect_snapshot())
            self._stop_event.wait(timeout=self._poll_rate)

    def collect_snapshot(self) -> PortSnapshot:
        """Run one discovery cycle and publish it to the store."""
        try:
            records = dict(self._discover(self._ports, self._ignore))
            if self._docker and records:
                records = attach_containers(records, list_containers())
        except Exception:
            logger.exception("Error while getting processes, reporting none")
            records = {}

        self._store.replace(records)
        return PortSnapshot(
            records=records,
            status=StatusInfo.from_process_count(len(records)),
            taken_at=time.monotonic(),
        )


class MenuRefreshPolicy:
    """
    Decides when the process list may be rebuilt.

    A rebuild is allowed only when no kill sequence is running, the process
    count differs from the one last shown and the cooldown has elapsed since
    the last rebuild. The very first rebuild is always allowed.
    """

    def __init__(
        self,
        cooldown: float = MENU_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cooldown = cooldown
        self._clock = clock
        self._last_count: int | None = None
        self._last_rebuild: float | None = None

    @property
    def last_count(self) -> int | None:
        return self._last_count

    def should_rebuild(self, count: int, killing: bool, now: float | None = None) -> bool:
        """Return True if a list showing ``count`` processes may be built now."""
        if killing:
            return False
        if self._last_rebuild is None:
            return True
        if count == self._last_count:
            return False
        now = self._clock() if now is None else now
        return now - self._last_rebuild >= self._cooldown

    def mark_rebuilt(self, count: int, now: float | None = None) -> None:
        """Record that a list showing ``count`` processes was just built."""
        self._last_count = count
        self._last_rebuild = self._clock() if now is None else now
