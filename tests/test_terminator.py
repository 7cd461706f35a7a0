"""Tests for escalating process termination."""

import os
import signal
import socket
import subprocess
import sys

import psutil
import pytest

from portkill import terminator
from portkill.errors import TerminationError
from portkill.terminator import (
    Terminator,
    is_running,
    listening_ports,
    process_name,
    terminate,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")


@pytest.fixture
def sent_signals(monkeypatch):
    """Record signals instead of delivering them."""
    sent: list[tuple[int, int]] = []

    def fake_kill(pid, sig):
        sent.append((pid, sig))

    monkeypatch.setattr(terminator.os, "kill", fake_kill)
    return sent


@pytest.fixture
def sleeps():
    return []


def make_terminator(sleeps, **kwargs) -> Terminator:
    return Terminator(grace_period=0.5, sleep=sleeps.append, windows=False, **kwargs)


@posix_only
class TestTerminatorStateMachine:
    """Tests for the SIGTERM -> wait -> check -> SIGKILL sequence."""

    def test_graceful_exit_skips_sigkill(self, monkeypatch, sent_signals, sleeps):
        monkeypatch.setattr(terminator, "is_running", lambda pid: False)

        make_terminator(sleeps).terminate(4242)

        assert sent_signals == [(4242, signal.SIGTERM)]
        assert sleeps == [0.5]

    def test_survivor_gets_sigkill(self, monkeypatch, sent_signals, sleeps):
        monkeypatch.setattr(terminator, "is_running", lambda pid: True)

        make_terminator(sleeps).terminate(4242)

        assert sent_signals == [(4242, signal.SIGTERM), (4242, signal.SIGKILL)]

    def test_sigkill_failure_is_not_raised(self, monkeypatch, sleeps):
        sent = []

        def fake_kill(pid, sig):
            sent.append(sig)
            if sig == signal.SIGKILL:
                raise PermissionError("operation not permitted")

        monkeypatch.setattr(terminator.os, "kill", fake_kill)
        monkeypatch.setattr(terminator, "is_running", lambda pid: True)

        make_terminator(sleeps).terminate(4242)

        assert sent == [signal.SIGTERM, signal.SIGKILL]

    def test_already_exited_pid_completes(self, monkeypatch, sleeps):
        sent = []

        def fake_kill(pid, sig):
            sent.append(sig)
            raise ProcessLookupError()

        monkeypatch.setattr(terminator.os, "kill", fake_kill)
        monkeypatch.setattr(terminator, "is_running", lambda pid: False)

        make_terminator(sleeps).terminate(4242)

        assert sent == [signal.SIGTERM]
        assert sleeps == [0.5]

    def test_failed_liveness_check_raises(self, monkeypatch, sent_signals, sleeps):
        def broken(pid):
            raise TerminationError("cannot check")

        monkeypatch.setattr(terminator, "is_running", broken)

        with pytest.raises(TerminationError):
            make_terminator(sleeps).terminate(4242)
        assert sent_signals == [(4242, signal.SIGTERM)]


@pytest.mark.parametrize("windows", [False, True])
@pytest.mark.parametrize("pid", [0, -1])
def test_non_positive_pid_is_never_signalled(monkeypatch, sent_signals, sleeps, windows, pid):
    def no_process(pid):
        raise AssertionError("psutil must not be consulted")

    monkeypatch.setattr(terminator.psutil, "Process", no_process)

    with pytest.raises(TerminationError):
        Terminator(sleep=sleeps.append, windows=windows).terminate(pid)
    assert sent_signals == []
    assert sleeps == []


class TestWindowsFlow:
    """Tests for the single-step forced kill."""

    def test_force_kill_without_grace_window(self, monkeypatch, sleeps):
        killed = []

        class FakeProcess:
            def __init__(self, pid):
                self.pid = pid

            def kill(self):
                killed.append(self.pid)

        monkeypatch.setattr(terminator.psutil, "Process", FakeProcess)

        Terminator(sleep=sleeps.append, windows=True).terminate(77)

        assert killed == [77]
        assert sleeps == []

    def test_missing_process_is_not_an_error(self, monkeypatch, sleeps):
        def gone(pid):
            raise psutil.NoSuchProcess(pid)

        monkeypatch.setattr(terminator.psutil, "Process", gone)

        Terminator(sleep=sleeps.append, windows=True).terminate(77)


class TestProcessQueries:
    """Tests for the process table helpers."""

    def test_current_process_is_running(self):
        assert is_running(os.getpid())

    def test_vanished_process_is_not_running(self, monkeypatch):
        def gone(pid):
            raise psutil.NoSuchProcess(pid)

        monkeypatch.setattr(terminator.psutil, "Process", gone)
        assert not is_running(12345)

    def test_access_denied_raises_termination_error(self, monkeypatch):
        def denied(pid):
            raise psutil.AccessDenied(pid)

        monkeypatch.setattr(terminator.psutil, "Process", denied)
        with pytest.raises(TerminationError):
            is_running(12345)

    def test_process_name_of_current_process(self):
        assert process_name(os.getpid()) == psutil.Process().name()

    def test_process_name_of_missing_process(self, monkeypatch):
        def gone(pid):
            raise psutil.NoSuchProcess(pid)

        monkeypatch.setattr(terminator.psutil, "Process", gone)
        assert process_name(12345) is None

    @pytest.mark.skipif(sys.platform != "linux", reason="own sockets are visible on Linux")
    def test_listening_ports_of_current_process(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen()
            port = server.getsockname()[1]

            assert port in listening_ports(os.getpid())


@posix_only
class TestRealProcesses:
    """Termination of real child processes."""

    def test_sleeping_child_exits_on_sigterm(self):
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
        try:
            terminate(child.pid, grace_period=0.5)
            assert child.wait(timeout=5) == -signal.SIGTERM
        finally:
            if child.poll() is None:
                child.kill()
                child.wait()

    def test_child_ignoring_sigterm_is_killed(self):
        code = (
            "import signal, sys, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(60)\n"
        )
        child = subprocess.Popen([sys.executable, "-c", code], stdout=subprocess.PIPE, text=True)
        try:
            assert child.stdout.readline().strip() == "ready"
            terminate(child.pid, grace_period=0.3)
            assert child.wait(timeout=5) == -signal.SIGKILL
        finally:
            if child.poll() is None:
                child.kill()
                child.wait()
            child.stdout.close()

