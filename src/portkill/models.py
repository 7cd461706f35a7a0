"""Data models for portkill."""

from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of one process listening on a monitored port."""

    port: int
    pid: int
    command: str
    name: str
    container_id: str | None = None
    container_name: str | None = None

    def label(self, show_pid: bool = False) -> str:
        """Human readable description used by the menu and console output."""
        if self.container_id and self.container_name:
            return f"Port {self.port}: {self.name} [Docker: {self.container_name}]"
        if show_pid:
            return f"Port {self.port}: {self.name} (PID {self.pid})"
        return f"Port {self.port}: {self.name}"


@dataclass(slots=True, frozen=True)
class PortSet:
    """
    The ports discovery is restricted to.

    Either an ordered tuple of explicit ports or the "all ports" sentinel,
    in which case ``ports`` is empty and every listening socket qualifies.
    """

    ports: tuple[int, ...] = ()
    discover_all: bool = False
    _members: frozenset[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        for port in self.ports:
            if not 0 < port <= 65535:
                raise ValueError(f"invalid port: {port}")
        object.__setattr__(self, "_members", frozenset(self.ports))

    @classmethod
    def from_ports(cls, ports: Iterable[int]) -> "PortSet":
        """Build a port set from an explicit list of ports."""
        return cls(ports=tuple(ports))

    @classmethod
    def from_ranges(cls, ranges: Iterable[tuple[int, int]]) -> "PortSet":
        """Build a port set from inclusive ``(start, end)`` ranges."""
        ports: list[int] = []
        for start, end in ranges:
            if start > end:
                raise ValueError(f"invalid port range: {start}-{end}")
            ports.extend(range(start, end + 1))
        return cls(ports=tuple(ports))

    @classmethod
    def all_ports(cls) -> "PortSet":
        """Port set that places no restriction on discovery."""
        return cls(discover_all=True)

    def __contains__(self, port: object) -> bool:
        return self.discover_all or port in self._members

    def __len__(self) -> int:
        return len(self.ports)

    def lsof_expression(self, max_explicit: int = 10) -> str | None:
        """
        Port expression passed to ``lsof -i :<expr>``.

        Small sets are listed individually, larger ones collapse to their
        min-max span. Returns None for the "all ports" sentinel.
        """
        if self.discover_all or not self.ports:
            return None
        if len(self.ports) <= max_explicit:
            return ",".join(str(port) for port in self.ports)
        return f"{min(self.ports)}-{max(self.ports)}"


@dataclass(slots=True, frozen=True)
class IgnoreSet:
    """Ports and process names that must never be listed or killed."""

    ports: frozenset[int] = frozenset()
    process_names: frozenset[str] = frozenset()

    @classmethod
    def build(
        cls,
        ports: Iterable[int] = (),
        process_names: Iterable[str] = (),
    ) -> "IgnoreSet":
        """Build an ignore set from any iterables."""
        return cls(ports=frozenset(ports), process_names=frozenset(process_names))


@dataclass(slots=True, frozen=True)
class StatusInfo:
    """Text shown on the status affordance plus its tooltip."""

    text: str
    tooltip: str

    @classmethod
    def from_process_count(cls, count: int) -> "StatusInfo":
        """Derive the status for ``count`` detected processes."""
        if count == 0:
            tooltip = "No development processes running"
        elif count == 1:
            tooltip = "1 development process running"
        else:
            tooltip = f"{count} development processes running"
        return cls(text=str(count), tooltip=tooltip)
