"""Shared fixtures for portkill tests."""

import pytest

from portkill import discovery

LSOF_LISTENERS = (
    "COMMAND   PID  USER   FD   TYPE  DEVICE SIZE/OFF NODE NAME\n"
    "node      100  dev   23u  IPv4  0x1a2b      0t0  TCP *:3000 (LISTEN)\n"
)


class FakeCompleted:
    def __init__(self, stdout: str) -> None:
        self.stdout = stdout
        self.stderr = ""
        self.returncode = 0


@pytest.fixture
def fake_lsof(monkeypatch):
    """Make discovery report a single node process on port 3000."""
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        return FakeCompleted(LSOF_LISTENERS)

    monkeypatch.setattr(discovery.subprocess, "run", fake_run)
    return calls
