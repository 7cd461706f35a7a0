"""Console front end: prints the port status and reads menu events from stdin."""

import logging
import sys
import threading
from queue import Empty, Queue
from typing import TextIO

from rich.console import Console

from portkill.actions import ActionKind, MenuSlot, event_id_for, resolve
from portkill.config import Config
from portkill.coordinator import KillCoordinator, KillResult, KillState, settle_delay_for
from portkill.monitor import PortMonitor, PortSnapshot
from portkill.snapshot import SnapshotStore

logger = logging.getLogger(__name__)


def render_snapshot(snapshot: PortSnapshot, show_pid: bool) -> list[str]:
    """Lines printed for one refresh."""
    lines = [f"Port Status: {snapshot.status.text} - {snapshot.status.tooltip}"]
    if snapshot.records:
        lines.append("Detected Processes:")
        for port in sorted(snapshot.records):
            lines.append(f"   • {snapshot.records[port].label(show_pid)}")
    else:
        lines.append("No processes detected")
    return lines


class ConsoleApp:
    """Runs discovery on a timer and accepts menu event ids typed on stdin."""

    def __init__(
        self,
        config: Config,
        console: Console | None = None,
        stdin: TextIO | None = None,
    ) -> None:
        self._config = config
        self._console = console or Console()
        self._stdin = stdin if stdin is not None else sys.stdin
        self._updates: Queue[PortSnapshot] = Queue()
        self._events: Queue[str] = Queue()
        self._store = SnapshotStore()
        self._state = KillState()
        interval = config.app.monitoring_interval_seconds
        self._monitor = PortMonitor(
            self._updates,
            config.port_set(),
            config.ignore_set(),
            store=self._store,
            poll_rate=interval,
            docker=config.docker,
        )
        self._coordinator = KillCoordinator(
            config.port_set(),
            config.ignore_set(),
            state=self._state,
            store=self._store,
            settle_delay=settle_delay_for(interval),
            on_result=self._print_result,
        )

    @property
    def coordinator(self) -> KillCoordinator:
        return self._coordinator

    def run(self) -> None:
        """Run until Quit is chosen or Ctrl+C is pressed."""
        self._console.print(f"Monitoring {self._config.describe()}")
        self._console.print(
            f"Type {event_id_for(MenuSlot.KILL_ALL)} to kill all, "
            f"kill_<port> to kill one, {event_id_for(MenuSlot.QUIT)} to quit."
        )
        reader = threading.Thread(target=self._read_events, daemon=True, name="ConsoleInput")
        reader.start()
        self._monitor.start()
        try:
            while True:
                self._drain_updates()
                try:
                    event_id = self._events.get(timeout=0.2)
                except Empty:
                    continue
                if not self.handle_event(event_id):
                    break
        except KeyboardInterrupt:
            pass
        finally:
            self._monitor.stop()

    def handle_event(self, event_id: str) -> bool:
        """Act on one menu event. Returns False when the app should exit."""
        action = resolve(event_id, self._store.records())
        if action.kind is ActionKind.QUIT:
            logger.info("Quit requested")
            return False
        self._coordinator.dispatch(action)
        return True

    def _drain_updates(self) -> None:
        snapshot = None
        while True:
            try:
                snapshot = self._updates.get_nowait()
            except Empty:
                break
        if snapshot is not None:
            for line in render_snapshot(snapshot, self._config.app.show_process_ids):
                self._console.print(line, markup=False, highlight=False)

    def _read_events(self) -> None:
        for line in self._stdin:
            line = line.strip()
            if line:
                self._events.put(line)

    def _print_result(self, result: KillResult) -> None:
        self._console.print(result.summary(), markup=False, highlight=False)
