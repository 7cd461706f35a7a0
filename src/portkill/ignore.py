"""Ignore policy applied to discovered port records."""

import logging
from collections.abc import Mapping

from portkill.models import IgnoreSet, ProcessRecord

logger = logging.getLogger(__name__)


def is_ignored(port: int, name: str, ignore: IgnoreSet) -> bool:
    """Return True if a listener on ``port`` named ``name`` must be left alone.

    Matching is exact: no globbing, no case folding.
    """
    return port in ignore.ports or name in ignore.process_names


def admit(record: ProcessRecord, ignore: IgnoreSet) -> bool:
    """Return True if ``record`` survives the ignore policy, logging drops."""
    if is_ignored(record.port, record.name, ignore):
        logger.info(
            "Ignoring process %s (PID %d) on port %d (ignored by user configuration)",
            record.name,
            record.pid,
            record.port,
        )
        return False
    return True


def filter_records(
    records: Mapping[int, ProcessRecord],
    ignore: IgnoreSet,
) -> dict[int, ProcessRecord]:
    """Drop every record whose port or process name is in ``ignore``."""
    return {port: record for port, record in records.items() if admit(record, ignore)}
