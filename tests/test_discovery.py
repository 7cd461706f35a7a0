"""Tests for the port table builder."""

import subprocess

import pytest

from portkill import discovery
from portkill.discovery import (
    build_lsof_command,
    discover,
    parse_lsof_line,
    parse_lsof_output,
    run_lsof,
)
from portkill.errors import DiscoveryError
from portkill.models import IgnoreSet, PortSet

LSOF_HEADER = "COMMAND   PID  USER   FD   TYPE             DEVICE SIZE/OFF NODE NAME"

LSOF_OUTPUT = "\n".join(
    [
        LSOF_HEADER,
        "node      100  dev   23u  IPv4 0x1a2b3c4d5e6f7081      0t0  TCP *:3000 (LISTEN)",
        "Figma     200  dev   31u  IPv6 0x1a2b3c4d5e6f7082      0t0  TCP [::1]:8080 (LISTEN)",
        "",
    ]
)


class FakeCompleted:
    def __init__(self, stdout: str, returncode: int = 0, stderr: str = "") -> None:
        self.stdout = stdout
        self.returncode = returncode
        self.stderr = stderr


class TestBuildLsofCommand:
    """Tests for build_lsof_command."""

    def test_explicit_ports(self):
        args = build_lsof_command(PortSet.from_ports([3000, 3001, 8080]))
        assert args == ["lsof", "-i", ":3000,3001,8080", "-sTCP:LISTEN", "-P", "-n"]

    def test_span_for_large_sets(self):
        args = build_lsof_command(PortSet.from_ranges([(3000, 3010)]))
        assert args[1:3] == ["-i", ":3000-3010"]

    def test_all_ports(self):
        args = build_lsof_command(PortSet.all_ports())
        assert args == ["lsof", "-iTCP", "-sTCP:LISTEN", "-P", "-n"]


class TestParseLsofLine:
    """Tests for parse_lsof_line."""

    def test_ipv4_wildcard(self):
        record = parse_lsof_line(
            "node      100  dev   23u  IPv4 0x1a2b      0t0  TCP *:3000 (LISTEN)"
        )
        assert record is not None
        assert (record.port, record.pid, record.name, record.command) == (
            3000,
            100,
            "node",
            "node",
        )

    def test_ipv6_address(self):
        record = parse_lsof_line("java  7  dev  5u  IPv6 0x1  0t0  TCP [::1]:8080 (LISTEN)")
        assert record is not None
        assert record.port == 8080

    def test_header_is_rejected(self):
        assert parse_lsof_line(LSOF_HEADER) is None

    def test_short_line_is_rejected(self):
        assert parse_lsof_line("node 100 dev") is None

    def test_non_numeric_pid_is_rejected(self):
        assert parse_lsof_line("node abc dev 23u IPv4 0x1 0t0 TCP *:3000 (LISTEN)") is None

    def test_non_numeric_port_is_rejected(self):
        assert parse_lsof_line("node 100 dev 23u IPv4 0x1 0t0 TCP *:http (LISTEN)") is None

    @pytest.mark.parametrize("pid", ["0", "-1", "-4242"])
    def test_non_positive_pid_is_rejected(self, pid):
        assert parse_lsof_line(f"node {pid} dev 23u IPv4 0x1 0t0 TCP *:3000 (LISTEN)") is None


class TestParseLsofOutput:
    """Tests for parse_lsof_output."""

    def test_scenario_ignored_port_is_dropped(self):
        ports = PortSet.from_ports([3000, 3001, 8080])
        ignore = IgnoreSet.build(ports=[8080])

        records = parse_lsof_output(LSOF_OUTPUT, ports, ignore)

        assert list(records) == [3000]
        assert records[3000].name == "node"
        assert records[3000].pid == 100

    def test_ignored_process_name_is_dropped(self):
        ports = PortSet.from_ports([3000, 8080])
        records = parse_lsof_output(LSOF_OUTPUT, ports, IgnoreSet.build(process_names=["Figma"]))
        assert list(records) == [3000]

    def test_ports_outside_the_set_are_dropped(self):
        output = "\n".join(
            [
                LSOF_HEADER,
                "node 100 dev 23u IPv4 0x1 0t0 TCP *:3005 (LISTEN)",
                "java 101 dev 23u IPv4 0x1 0t0 TCP *:5000 (LISTEN)",
            ]
        )
        ports = PortSet.from_ranges([(3000, 3010), (8000, 8010)])

        records = parse_lsof_output(output, ports)

        assert list(records) == [3005]

    def test_malformed_lines_are_skipped(self):
        output = "\n".join(
            [
                LSOF_HEADER,
                "garbage",
                "node 100 dev 23u IPv4 0x1 0t0 TCP *:3000 (LISTEN)",
                "node xyz dev 23u IPv4 0x1 0t0 TCP *:3001 (LISTEN)",
            ]
        )
        records = parse_lsof_output(output, PortSet.from_ports([3000, 3001]))
        assert list(records) == [3000]

    def test_last_listener_on_a_port_wins(self):
        output = "\n".join(
            [
                LSOF_HEADER,
                "node 100 dev 23u IPv4 0x1 0t0 TCP *:3000 (LISTEN)",
                "node 101 dev 24u IPv6 0x2 0t0 TCP *:3000 (LISTEN)",
            ]
        )
        records = parse_lsof_output(output, PortSet.from_ports([3000]))
        assert records[3000].pid == 101

    def test_first_line_is_always_treated_as_header(self):
        output = "node 100 dev 23u IPv4 0x1 0t0 TCP *:3000 (LISTEN)"
        assert parse_lsof_output(output, PortSet.from_ports([3000])) == {}


class TestRunLsof:
    """Tests for run_lsof error mapping."""

    def test_missing_tool(self, monkeypatch):
        def fake_run(*args, **kwargs):
            raise FileNotFoundError("lsof")

        monkeypatch.setattr(discovery.subprocess, "run", fake_run)
        with pytest.raises(DiscoveryError):
            run_lsof(["lsof"])

    def test_timeout(self, monkeypatch):
        def fake_run(*args, **kwargs):
            raise subprocess.TimeoutExpired(cmd="lsof", timeout=1)

        monkeypatch.setattr(discovery.subprocess, "run", fake_run)
        with pytest.raises(DiscoveryError):
            run_lsof(["lsof"], timeout=1)

    def test_no_match_exit_status_is_not_an_error(self, monkeypatch):
        monkeypatch.setattr(
            discovery.subprocess, "run", lambda *a, **k: FakeCompleted("", returncode=1)
        )
        assert run_lsof(["lsof"]) == ""


class TestDiscover:
    """Tests for discover."""

    def test_discover_parses_tool_output(self, monkeypatch):
        calls = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return FakeCompleted(LSOF_OUTPUT)

        monkeypatch.setattr(discovery.subprocess, "run", fake_run)

        records = discover(PortSet.from_ports([3000, 3001, 8080]), IgnoreSet.build(ports=[8080]))

        assert calls == [["lsof", "-i", ":3000,3001,8080", "-sTCP:LISTEN", "-P", "-n"]]
        assert list(records) == [3000]

    def test_discover_without_ignore_set(self, monkeypatch):
        monkeypatch.setattr(discovery.subprocess, "run", lambda *a, **k: FakeCompleted(LSOF_OUTPUT))
        records = discover(PortSet.from_ports([3000, 8080]))
        assert sorted(records) == [3000, 8080]

    def test_missing_tool_yields_empty_snapshot(self, monkeypatch):
        def fake_run(*args, **kwargs):
            raise FileNotFoundError("lsof")

        monkeypatch.setattr(discovery.subprocess, "run", fake_run)
        assert discover(PortSet.from_ports([3000])) == {}

    def test_os_error_yields_empty_snapshot(self, monkeypatch):
        def fake_run(*args, **kwargs):
            raise PermissionError("denied")

        monkeypatch.setattr(discovery.subprocess, "run", fake_run)
        assert discover(PortSet.all_ports()) == {}
