"""Port table builder: maps listening TCP sockets to their owning processes."""

import logging
import subprocess

from portkill.errors import DiscoveryError
from portkill.ignore import admit
from portkill.models import IgnoreSet, PortSet, ProcessRecord

logger = logging.getLogger(__name__)

LSOF = "lsof"
MIN_COLUMNS = 9
COMMAND_COLUMN = 0
PID_COLUMN = 1
ADDRESS_COLUMN = 8
DEFAULT_TIMEOUT = 10.0


def build_lsof_command(ports: PortSet) -> list[str]:
    """Build the lsof invocation listing TCP listeners within ``ports``."""
    expression = ports.lsof_expression()
    if expression is None:
        selector = ["-iTCP"]
    else:
        selector = ["-i", f":{expression}"]
    return [LSOF, *selector, "-sTCP:LISTEN", "-P", "-n"]


def parse_lsof_line(line: str) -> ProcessRecord | None:
    """
    Parse one row of ``lsof`` output.

    Returns None for the header and for any row that does not have enough
    columns or whose PID or port is not an integer.
    """
    parts = line.split()
    if len(parts) < MIN_COLUMNS:
        return None
    try:
        pid = int(parts[PID_COLUMN])
        port = int(parts[ADDRESS_COLUMN].rsplit(":", 1)[-1])
    except ValueError:
        return None
    if pid <= 0 or not 0 < port <= 65535:
        return None
    command = parts[COMMAND_COLUMN]
    return ProcessRecord(port=port, pid=pid, command=command, name=command)


def parse_lsof_output(
    output: str,
    ports: PortSet,
    ignore: IgnoreSet | None = None,
) -> dict[int, ProcessRecord]:
    """
    Turn raw lsof output into a snapshot keyed by port.

    Rows outside ``ports`` (possible when a span was queried) and rows
    matching ``ignore`` are dropped. When several rows report the same port
    the last one wins.
    """
    records: dict[int, ProcessRecord] = {}
    for line in output.splitlines()[1:]:
        record = parse_lsof_line(line)
        if record is None:
            continue
        if record.port not in ports:
            logger.debug("Skipping port %d outside the monitored set", record.port)
            continue
        if ignore is not None and not admit(record, ignore):
            continue
        records[record.port] = record
    return records


def run_lsof(args: list[str], timeout: float | None = DEFAULT_TIMEOUT) -> str:
    """
    Run lsof and return its standard output.

    lsof exits with status 1 when nothing matches, so the exit status is not
    checked; only failing to run the tool at all is an error.

    Raises:
        DiscoveryError: lsof is missing, could not be started or timed out.
    """
    try:
        completed = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise DiscoveryError(f"{args[0]} not found") from e
    except subprocess.TimeoutExpired as e:
        raise DiscoveryError(f"{args[0]} timed out after {timeout}s") from e
    except OSError as e:
        raise DiscoveryError(f"failed to run {args[0]}: {e}") from e
    return completed.stdout or ""


def discover(
    ports: PortSet,
    ignore: IgnoreSet | None = None,
    timeout: float | None = DEFAULT_TIMEOUT,
) -> dict[int, ProcessRecord]:
    """
    Discover the processes listening on ``ports``.

    Never raises for tool failures: an unavailable or hanging lsof yields an
    empty snapshot, which callers show as zero processes.
    """
    args = build_lsof_command(ports)
    try:
        output = run_lsof(args, timeout=timeout)
    except DiscoveryError as e:
        logger.warning("Port discovery failed: %s", e)
        return {}
    records = parse_lsof_output(output, ports, ignore)
    logger.debug("Discovered %d listening processes", len(records))
    return records
