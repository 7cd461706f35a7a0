"""Menu layout and resolution of menu events into actions.

Menu item identifiers handed out by UI toolkits are not stable across menu
rebuilds, so the menu is a fixed layout decided at startup and events are
resolved by their ordinal position in it. A small alias table covers the
identifiers observed from older menus.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from portkill.models import ProcessRecord


class ActionKind(Enum):
    """Kinds of action a menu event can resolve to."""

    KILL_ALL = "kill_all"
    KILL_PROCESS = "kill_process"
    QUIT = "quit"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class MenuAction:
    """A resolved menu action. ``port`` is set only for KILL_PROCESS."""

    kind: ActionKind
    port: int | None = None
    event_id: str | None = None

    @classmethod
    def kill_all(cls) -> "MenuAction":
        return cls(ActionKind.KILL_ALL)

    @classmethod
    def kill_process(cls, port: int) -> "MenuAction":
        return cls(ActionKind.KILL_PROCESS, port=port)

    @classmethod
    def quit(cls) -> "MenuAction":
        return cls(ActionKind.QUIT)

    @classmethod
    def unknown(cls, event_id: str) -> "MenuAction":
        return cls(ActionKind.UNKNOWN, event_id=event_id)


class MenuSlot(Enum):
    """Entries of the static menu, in display order."""

    KILL_ALL = "kill_all"
    SEPARATOR_TOP = "separator_top"
    STATUS = "status"
    PORTS = "ports"
    IGNORED = "ignored"
    SEPARATOR_BOTTOM = "separator_bottom"
    QUIT = "quit"

    @property
    def is_separator(self) -> bool:
        return self in (MenuSlot.SEPARATOR_TOP, MenuSlot.SEPARATOR_BOTTOM)

    @property
    def is_actionable(self) -> bool:
        return self in (MenuSlot.KILL_ALL, MenuSlot.QUIT)


# Ordinal position -> slot. Never changes while the application runs.
MENU_LAYOUT: tuple[MenuSlot, ...] = tuple(MenuSlot)

KILL_ALL_ORDINAL = MENU_LAYOUT.index(MenuSlot.KILL_ALL)
QUIT_ORDINAL = MENU_LAYOUT.index(MenuSlot.QUIT)

# Identifiers seen from earlier menus. "first_process" targets the lowest
# monitored port, as those menus listed processes sorted by port.
LEGACY_ALIASES: Mapping[str, str] = {
    "10": "kill_all",
    "kill_all": "kill_all",
    "16": "quit",
    "quit": "quit",
    "12": "first_process",
    "13": "first_process",
    "14": "first_process",
    "15": "first_process",
}

_KILL_PORT_RE = re.compile(r"^kill_([0-9]+)$")


def event_id_for(slot: MenuSlot) -> str:
    """Return the event identifier the UI emits for ``slot``."""
    return str(MENU_LAYOUT.index(slot))


def event_id_for_port(port: int) -> str:
    """Return the event identifier for killing the listener on ``port``."""
    return f"kill_{port}"


def _resolve_ordinal(event_id: str) -> MenuAction | None:
    if not (event_id.isascii() and event_id.isdigit()):
        return None
    ordinal = int(event_id)
    if ordinal == KILL_ALL_ORDINAL:
        return MenuAction.kill_all()
    if ordinal == QUIT_ORDINAL:
        return MenuAction.quit()
    return None


def _resolve_alias(
    event_id: str,
    records: Mapping[int, ProcessRecord],
    aliases: Mapping[str, str],
) -> MenuAction | None:
    target = aliases.get(event_id)
    if target == "kill_all":
        return MenuAction.kill_all()
    if target == "quit":
        return MenuAction.quit()
    if target == "first_process":
        if not records:
            return None
        return MenuAction.kill_process(min(records))

    # A per-port event never widens into kill-all, even when the port has
    # left the snapshot since the row was drawn.
    match = _KILL_PORT_RE.match(event_id)
    if match:
        return MenuAction.kill_process(int(match.group(1)))
    return None


def resolve(
    event_id: str,
    records: Mapping[int, ProcessRecord],
    aliases: Mapping[str, str] | None = None,
) -> MenuAction:
    """
    Map a menu event identifier to an action.

    The ordinal layout is consulted first, then the alias table. Identifiers
    neither recognises resolve to UNKNOWN; it is up to the caller what to do
    with those. The result depends only on the arguments.

    Args:
        event_id: Identifier reported by the UI for the activated item.
        records: Current snapshot, keyed by port. Only consulted for the
            legacy identifiers that target the lowest port.
        aliases: Alias table overriding ``LEGACY_ALIASES``.
    """
    event_id = event_id.strip()
    action = _resolve_ordinal(event_id)
    if action is None:
        action = _resolve_alias(
            event_id,
            records,
            LEGACY_ALIASES if aliases is None else aliases,
        )
    if action is None:
        return MenuAction.unknown(event_id)
    return action
