"""Thread-safe holder for the latest discovery snapshot."""

import threading
import time
from collections.abc import Mapping

from portkill.models import ProcessRecord


class SnapshotStore:
    """
    Holds the most recent snapshot of listening processes.

    Snapshots are replaced wholesale, never merged, so readers always see one
    complete discovery cycle. The lock is held only while swapping or copying
    the mapping.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[int, ProcessRecord] = {}
        self._updated_at: float | None = None

    def replace(self, records: Mapping[int, ProcessRecord]) -> None:
        """Install ``records`` as the current snapshot."""
        new_records = dict(records)
        with self._lock:
            self._records = new_records
            self._updated_at = time.monotonic()

    def records(self) -> dict[int, ProcessRecord]:
        """Return a copy of the current snapshot keyed by port."""
        with self._lock:
            return dict(self._records)

    def get(self, port: int) -> ProcessRecord | None:
        """Return the record listening on ``port``, if any."""
        with self._lock:
            return self._records.get(port)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def updated_at(self) -> float | None:
        """Monotonic time of the last replacement, None before the first."""
        with self._lock:
            return self._updated_at
