"""Attribute listening ports to Docker containers."""

import dataclasses
import logging
import subprocess
from collections.abc import Mapping

from portkill.models import ProcessRecord

logger = logging.getLogger(__name__)

DOCKER_PS = ["docker", "ps", "--format", "{{.ID}}\t{{.Names}}\t{{.Ports}}"]


def parse_published_ports(ports_field: str) -> set[int]:
    """
    Extract host ports from the ``Ports`` column of ``docker ps``.

    Handles ``0.0.0.0:8080->80/tcp``, ``[::]:8080->80/tcp``, ``:::8080->80/tcp``
    and ranges such as ``0.0.0.0:5000-5002->5000-5002/tcp``. Ports that are
    exposed but not published (``80/tcp``) are skipped.
    """
    host_ports: set[int] = set()
    for entry in ports_field.split(","):
        entry = entry.strip()
        if "->" not in entry:
            continue
        host = entry.split("->", 1)[0].rsplit(":", 1)[-1]
        try:
            if "-" in host:
                start, end = (int(part) for part in host.split("-", 1))
                host_ports.update(range(start, end + 1))
            else:
                host_ports.add(int(host))
        except ValueError:
            continue
    return host_ports


def parse_docker_ps(output: str) -> dict[int, tuple[str, str]]:
    """Map published host ports to ``(container_id, container_name)``."""
    containers: dict[int, tuple[str, str]] = {}
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        container_id, name, ports_field = parts[0].strip(), parts[1].strip(), parts[2]
        if not container_id:
            continue
        for port in parse_published_ports(ports_field):
            containers[port] = (container_id, name)
    return containers


def list_containers(timeout: float | None = 10.0) -> dict[int, tuple[str, str]]:
    """Query Docker for published ports. Empty if Docker is unavailable."""
    try:
        completed = subprocess.run(
            DOCKER_PS,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Docker lookup unavailable: %s", e)
        return {}
    if completed.returncode != 0:
        logger.debug("docker ps failed: %s", completed.stderr.strip())
        return {}
    return parse_docker_ps(completed.stdout)


def attach_containers(
    records: Mapping[int, ProcessRecord],
    containers: Mapping[int, tuple[str, str]],
) -> dict[int, ProcessRecord]:
    """Return ``records`` with container details filled in where known."""
    attached: dict[int, ProcessRecord] = {}
    for port, record in records.items():
        container = containers.get(port)
        if container is None:
            attached[port] = record
            continue
        container_id, container_name = container
        attached[port] = dataclasses.replace(
            record, container_id=container_id, container_name=container_name
        )
    return attached
