"""Configuration for portkill, stored as TOML."""

import logging
import math
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from portkill.errors import ConfigError
from portkill.models import IgnoreSet, PortSet

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".portkill" / "config.toml"


class DiscoveryMode(Enum):
    """How the monitored ports are chosen."""

    RANGE = "range"
    SPECIFIC = "specific"
    ALL = "all"


@dataclass(slots=True)
class PortRange:
    start: int
    end: int
    description: str = ""


@dataclass(slots=True)
class AppSettings:
    monitoring_interval_seconds: float = 3.0
    verbose_logging: bool = False
    show_process_ids: bool = False
    menu_update_cooldown_seconds: float = 2.0
    max_processes_in_menu: int = 20


_TOML_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _toml_string(value: str) -> str:
    """Quote ``value`` as a TOML basic string."""
    chars = []
    for char in value:
        if char in _TOML_ESCAPES:
            chars.append(_TOML_ESCAPES[char])
        elif char < " " or char == "\x7f":
            chars.append(f"\\u{ord(char):04x}")
        else:
            chars.append(char)
    return '"' + "".join(chars) + '"'


def _default_ranges() -> list[PortRange]:
    return [
        PortRange(3000, 3010, "React, Next.js, development servers"),
        PortRange(5000, 5010, "Flask, Vite, PostgreSQL, development"),
        PortRange(8000, 8010, "Django, FastAPI, general HTTP servers"),
    ]


def _default_ignored_processes() -> list[str]:
    return [
        "Google",
        "Adobe",
        "Dropbox",
        "Cursor",
        "Figma",
        "Raycast",
        "ControlCe",
        "sharingd",
        "rapportd",
    ]


@dataclass(slots=True)
class Config:
    """Everything the core needs from the user for one run."""

    mode: DiscoveryMode = DiscoveryMode.RANGE
    ranges: list[PortRange] = field(default_factory=_default_ranges)
    specific: list[int] = field(default_factory=lambda: [3000, 3001, 5000, 5173, 8000, 8080])
    ignore_ports: list[int] = field(default_factory=lambda: [5353, 7000])
    ignore_processes: list[str] = field(default_factory=_default_ignored_processes)
    app: AppSettings = field(default_factory=AppSettings)
    docker: bool = False

    def port_set(self) -> PortSet:
        """Ports to monitor according to the discovery mode."""
        if self.mode is DiscoveryMode.ALL:
            return PortSet.all_ports()
        if self.mode is DiscoveryMode.SPECIFIC:
            return PortSet.from_ports(self.specific)
        return PortSet.from_ranges((r.start, r.end) for r in self.ranges)

    def ignore_set(self) -> IgnoreSet:
        return IgnoreSet.build(self.ignore_ports, self.ignore_processes)

    def describe(self) -> str:
        """Describe what is being monitored, for the UI."""
        if self.mode is DiscoveryMode.ALL:
            return "auto-discovering ALL listening processes on ANY port"
        if self.mode is DiscoveryMode.SPECIFIC:
            return "specific ports: " + ", ".join(str(p) for p in self.specific)
        ranges = ", ".join(
            f"{r.start}-{r.end} ({r.description})" if r.description else f"{r.start}-{r.end}"
            for r in self.ranges
        )
        return f"port ranges: {ranges}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Build a Config from parsed TOML.

        Missing sections fall back to the defaults.

        Raises:
            ConfigError: A value has the wrong type or is out of range.
        """
        config = cls()
        try:
            discovery = data.get("discovery", {})
            if "mode" in discovery:
                config.mode = DiscoveryMode(discovery["mode"])

            ports = data.get("ports", {})
            if "ranges" in ports:
                config.ranges = [
                    PortRange(int(r["start"]), int(r["end"]), str(r.get("description", "")))
                    for r in ports["ranges"]
                ]
            if "specific" in ports:
                config.specific = [int(p) for p in ports["specific"]]

            ignore = data.get("ignore", {})
            if "ports" in ignore:
                config.ignore_ports = [int(p) for p in ignore["ports"]]
            if "processes" in ignore:
                config.ignore_processes = [str(p) for p in ignore["processes"]]

            app = data.get("app", {})
            defaults = AppSettings()
            config.app = AppSettings(
                monitoring_interval_seconds=float(
                    app.get("monitoring_interval_seconds", defaults.monitoring_interval_seconds)
                ),
                verbose_logging=bool(app.get("verbose_logging", defaults.verbose_logging)),
                show_process_ids=bool(app.get("show_process_ids", defaults.show_process_ids)),
                menu_update_cooldown_seconds=float(
                    app.get("menu_update_cooldown_seconds", defaults.menu_update_cooldown_seconds)
                ),
                max_processes_in_menu=int(
                    app.get("max_processes_in_menu", defaults.max_processes_in_menu)
                ),
            )
            interval = config.app.monitoring_interval_seconds
            if not (math.isfinite(interval) and interval > 0):
                raise ValueError(f"monitoring_interval_seconds is not positive: {interval}")
            cooldown = config.app.menu_update_cooldown_seconds
            if not (math.isfinite(cooldown) and cooldown >= 0):
                raise ValueError(f"menu_update_cooldown_seconds is negative: {cooldown}")
            # Validates every port and range.
            config.port_set()
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid configuration: {e}") from e
        return config

    def to_toml(self) -> str:
        """Render the configuration as TOML."""
        lines = [
            "[discovery]",
            f"mode = {_toml_string(self.mode.value)}",
            "",
            "[ports]",
            "specific = [" + ", ".join(str(p) for p in self.specific) + "]",
            "ranges = [",
        ]
        for r in self.ranges:
            lines.append(
                f"    {{ start = {r.start}, end = {r.end}, "
                f"description = {_toml_string(r.description)} }},"
            )
        lines += [
            "]",
            "",
            "[ignore]",
            "ports = [" + ", ".join(str(p) for p in self.ignore_ports) + "]",
            "processes = [" + ", ".join(_toml_string(p) for p in self.ignore_processes) + "]",
            "",
            "[app]",
            f"monitoring_interval_seconds = {self.app.monitoring_interval_seconds}",
            f"verbose_logging = {str(self.app.verbose_logging).lower()}",
            f"show_process_ids = {str(self.app.show_process_ids).lower()}",
            f"menu_update_cooldown_seconds = {self.app.menu_update_cooldown_seconds}",
            f"max_processes_in_menu = {self.app.max_processes_in_menu}",
            "",
        ]
        return "\n".join(lines)


def load(path: Path) -> Config:
    """
    Load the configuration file at ``path``.

    Raises:
        ConfigError: The file cannot be read or parsed.
    """
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e
    try:
        config = Config.from_dict(data)
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e
    logger.info("Loaded configuration from %s", path)
    return config


def save(config: Config, path: Path) -> None:
    """Write ``config`` to ``path``, creating parent directories."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(config.to_toml(), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to write config file {path}: {e}") from e
    logger.info("Saved configuration to %s", path)


def load_or_create(path: Path = DEFAULT_CONFIG_PATH) -> Config:
    """Load ``path``, writing the default configuration there if it is missing."""
    if path.exists():
        return load(path)
    logger.info("Config file not found at %s, creating default configuration", path)
    config = Config()
    save(config, path)
    return config
