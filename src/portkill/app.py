"""portkill - Main Textual application."""

import logging
from queue import Empty, Queue

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.widgets import DataTable, Footer, OptionList, Static
from textual.widgets.option_list import Option

from portkill.actions import (
    MENU_LAYOUT,
    ActionKind,
    MenuSlot,
    event_id_for,
    event_id_for_port,
    resolve,
)
from portkill.config import Config
from portkill.coordinator import KillCoordinator, KillResult, KillState, settle_delay_for
from portkill.models import ProcessRecord, StatusInfo
from portkill.monitor import MenuRefreshPolicy, PortMonitor, PortSnapshot
from portkill.snapshot import SnapshotStore

logger = logging.getLogger(__name__)

SEPARATOR = "─" * 24


def menu_prompts(config: Config) -> dict[MenuSlot, str]:
    """Text of every static menu entry."""
    ignore = config.ignore_set()
    return {
        MenuSlot.KILL_ALL: "Kill All Processes",
        MenuSlot.SEPARATOR_TOP: SEPARATOR,
        MenuSlot.STATUS: f"Refresh every {config.app.monitoring_interval_seconds:g}s",
        MenuSlot.PORTS: f"Watching {config.describe()}",
        MenuSlot.IGNORED: (
            f"Ignoring {len(ignore.ports)} port(s), {len(ignore.process_names)} process name(s)"
        ),
        MenuSlot.SEPARATOR_BOTTOM: SEPARATOR,
        MenuSlot.QUIT: "Quit",
    }


class StatusHeader(Static):
    """Header widget showing the process count and tooltip."""

    DEFAULT_CSS = """
    StatusHeader {
        height: auto;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize StatusHeader."""
        super().__init__(*args, **kwargs)
        self._status = StatusInfo.from_process_count(0)

    @property
    def status(self) -> StatusInfo:
        return self._status

    def on_mount(self) -> None:
        self.update(self._render_status())

    def update_status(self, status: StatusInfo) -> None:
        """Show ``status``."""
        self._status = status
        self.update(self._render_status())

    def _render_status(self) -> Text:
        colour = "green" if self._status.text == "0" else "dark_orange"
        text = Text()
        text.append(" ● ", style=f"bold {colour}")
        text.append(f"{self._status.text} ", style="bold")
        text.append(self._status.tooltip)
        return text


class MenuPanel(OptionList):
    """The static menu. Option ids are the ordinal of each entry."""

    DEFAULT_CSS = """
    MenuPanel {
        width: 48;
        height: 1fr;
    }
    """

    def __init__(self, config: Config, *args, **kwargs) -> None:
        prompts = menu_prompts(config)
        options = [
            Option(
                Text(prompts[slot]),
                id=event_id_for(slot),
                disabled=not slot.is_actionable,
            )
            for slot in MENU_LAYOUT
        ]
        super().__init__(*options, *args, **kwargs)


class ProcessTable(DataTable):
    """Table of the processes currently listening on monitored ports."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def on_mount(self) -> None:
        """Initialize the columns when mounted."""
        self.cursor_type = "row"
        self.add_column("PORT", key="port", width=7)
        self.add_column("PID", key="pid", width=8)
        self.add_column("NAME", key="name", width=16)
        self.add_column("CONTAINER", key="container")

    def update_records(
        self,
        records: dict[int, ProcessRecord],
        show_pid: bool = False,
        limit: int | None = None,
    ) -> None:
        """
        Rebuild the table from ``records``, sorted by port.

        Args:
            records: Snapshot keyed by port.
            show_pid: Fill the PID column.
            limit: Show at most this many processes.
        """
        self.clear()
        ports = sorted(records)
        if limit is not None:
            ports = ports[:limit]
        for port in ports:
            record = records[port]
            self.add_row(
                Text(str(port)),
                Text(str(record.pid) if show_pid else ""),
                Text(record.name),
                Text(record.container_name or ""),
                key=str(port),
            )


class PortKillApp(App):
    """Main portkill application."""

    TITLE = "portkill"
    SUB_TITLE = "Development Port Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #status-header {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("k", "kill_all", "Kill All"),
    ]

    def __init__(self, config: Config | None = None) -> None:
        """Initialize the PortKillApp."""
        super().__init__()
        self._config = config or Config()
        interval = self._config.app.monitoring_interval_seconds
        self._update_queue: Queue[PortSnapshot] = Queue()
        self._store = SnapshotStore()
        self._kill_state = KillState()
        self._monitor = PortMonitor(
            self._update_queue,
            self._config.port_set(),
            self._config.ignore_set(),
            store=self._store,
            poll_rate=interval,
            docker=self._config.docker,
        )
        self._coordinator = KillCoordinator(
            self._config.port_set(),
            self._config.ignore_set(),
            state=self._kill_state,
            store=self._store,
            settle_delay=settle_delay_for(interval),
            on_result=self._on_kill_result,
        )
        self._refresh_policy = MenuRefreshPolicy(
            cooldown=self._config.app.menu_update_cooldown_seconds
        )

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield StatusHeader(id="status-header")
        yield Horizontal(
            MenuPanel(self._config, id="menu"),
            ProcessTable(id="process-table"),
        )
        yield Footer()

    def on_mount(self) -> None:
        """Start the port monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop polling once the app is gone."""
        self._monitor.stop(timeout=1.0)

    def _check_for_updates(self) -> None:
        """Check the queue for new snapshots and refresh the UI."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: PortSnapshot) -> None:
        """Update the UI with a new snapshot."""
        try:
            self.query_one(StatusHeader).update_status(snapshot.status)
        except Exception:
            logger.exception("Failed to update status")

        killing = self._kill_state.in_progress
        if not self._refresh_policy.should_rebuild(snapshot.count, killing):
            if snapshot.count != self._refresh_policy.last_count:
                logger.debug(
                    "Process count changed to %d but skipping table rebuild (killing: %s)",
                    snapshot.count,
                    killing,
                )
            return

        try:
            self.query_one(ProcessTable).update_records(
                snapshot.records,
                show_pid=self._config.app.show_process_ids,
                limit=self._config.app.max_processes_in_menu,
            )
        except Exception:
            logger.exception("Table rebuild failed, skipping this update")
            return
        self._refresh_policy.mark_rebuilt(snapshot.count)

    def handle_menu_event(self, event_id: str) -> None:
        """Resolve a menu event and act on it."""
        action = resolve(event_id, self._store.records())
        logger.info("Menu event %s resolved to %s", event_id, action.kind.value)
        if action.kind is ActionKind.QUIT:
            self.action_quit()
            return
        if self._coordinator.dispatch(action) is not None:
            self.notify("Killing processes...")

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        if event.option.id is not None:
            self.handle_menu_event(event.option.id)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.row_key.value is not None:
            self.handle_menu_event(event_id_for_port(int(event.row_key.value)))

    def _on_kill_result(self, result: KillResult) -> None:
        """Called on the kill worker thread."""
        try:
            self.call_from_thread(self.notify, result.summary())
        except RuntimeError:
            logger.debug("App not running, result not shown: %s", result.summary())

    def action_kill_all(self) -> None:
        """Handle kill all action."""
        self.handle_menu_event(event_id_for(MenuSlot.KILL_ALL))

    def action_quit(self) -> None:
        """Handle quit action."""
        self._monitor.stop(timeout=1.0)
        self.exit()
