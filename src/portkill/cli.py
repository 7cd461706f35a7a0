"""Command line interface for portkill."""

import argparse
import math
from collections.abc import Sequence
from pathlib import Path

from portkill import __version__
from portkill.config import DEFAULT_CONFIG_PATH, Config, DiscoveryMode, PortRange


def port(value: str) -> int:
    """argparse type for a single TCP port."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 < number <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {number}")
    return number


def port_list(value: str) -> list[int]:
    """argparse type for a comma separated list of ports."""
    return [port(item.strip()) for item in value.split(",") if item.strip()]


def name_list(value: str) -> list[str]:
    """argparse type for a comma separated list of process names."""
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portkill",
        description="Find and stop processes listening on development ports",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"configuration file (default: {DEFAULT_CONFIG_PATH})",
    )

    ports = parser.add_mutually_exclusive_group()
    ports.add_argument("--ports", type=port_list, help="specific ports, e.g. 3000,8080")
    ports.add_argument("--start-port", type=port, help="first port of a range to monitor")
    ports.add_argument("--all", action="store_true", help="monitor every listening port")
    parser.add_argument("--end-port", type=port, help="last port of the --start-port range")

    parser.add_argument("--ignore-ports", type=port_list, help="ports never to list or kill")
    parser.add_argument(
        "--ignore-processes",
        type=name_list,
        help="process names never to list or kill, e.g. Figma,Dropbox",
    )
    parser.add_argument("--show-pid", action="store_true", help="show process IDs")
    parser.add_argument("--docker", action="store_true", help="attribute ports to containers")
    parser.add_argument("--console", action="store_true", help="plain console output, no TUI")
    parser.add_argument("--interval", type=float, help="seconds between refreshes")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.end_port is not None and args.start_port is None:
        parser.error("--end-port requires --start-port")
    if args.start_port is not None:
        end = args.end_port if args.end_port is not None else args.start_port
        if end < args.start_port:
            parser.error("--end-port must not be lower than --start-port")
    if args.interval is not None and not (math.isfinite(args.interval) and args.interval > 0):
        parser.error("--interval must be a positive number of seconds")
    return args


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command line options on top of the loaded configuration."""
    if args.all:
        config.mode = DiscoveryMode.ALL
    elif args.ports:
        config.mode = DiscoveryMode.SPECIFIC
        config.specific = list(args.ports)
    elif args.start_port is not None:
        end = args.end_port if args.end_port is not None else args.start_port
        config.mode = DiscoveryMode.RANGE
        config.ranges = [PortRange(args.start_port, end, "command line")]

    if args.ignore_ports is not None:
        config.ignore_ports = list(args.ignore_ports)
    if args.ignore_processes is not None:
        config.ignore_processes = list(args.ignore_processes)
    if args.show_pid:
        config.app.show_process_ids = True
    if args.verbose:
        config.app.verbose_logging = True
    if args.interval is not None:
        config.app.monitoring_interval_seconds = args.interval
    if args.docker:
        config.docker = True
    return config
