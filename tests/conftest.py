"""Shared fixtures: a fake clock, a fake process backend and a fake shutdown event."""

import pytest

from logwatchdog.config import Config
from logwatchdog.supervisor.activity import LogActivityTracker
from logwatchdog.supervisor.controller import ProcessController
from logwatchdog.supervisor.loop import SupervisorLoop
from logwatchdog.supervisor.process_utils import ProcessHandle


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProcess:
    def __init__(self, pid, command, ignores_term=False, unkillable=False):
        self.pid = pid
        self.command = command
        self.alive = True
        self.ignores_term = ignores_term
        self.unkillable = unkillable
        self.signals = []


class FakeBackend:
    """Process backend that never spawns OS processes."""

    def __init__(self, clock=None):
        self.clock = clock
        self.processes = []
        self.events = []
        self.waits = []
        self.spawn_error = None
        self.spawn_attempts = 0
        self.ignore_term = False
        self.unkillable = False
        self.on_wait = None
        self._next_pid = 1000

    @property
    def running(self):
        return [p for p in self.processes if p.alive]

    def spawn(self, command):
        self.spawn_attempts += 1
        if self.spawn_error is not None:
            self.events.append(("spawn_failed", None))
            raise self.spawn_error
        proc = FakeProcess(self._next_pid, command, self.ignore_term, self.unkillable)
        self._next_pid += 1
        self.processes.append(proc)
        self.events.append(("spawn", proc.pid))
        return ProcessHandle(pid=proc.pid, process=proc)

    def is_running(self, handle):
        return handle.process.alive

    def terminate(self, handle):
        proc = handle.process
        proc.signals.append("TERM")
        self.events.append(("terminate", proc.pid))
        if not proc.ignores_term:
            proc.alive = False

    def kill(self, handle):
        proc = handle.process
        proc.signals.append("KILL")
        self.events.append(("kill", proc.pid))
        if not proc.unkillable:
            proc.alive = False

    def wait(self, handle, timeout):
        self.waits.append(timeout)
        if self.on_wait:
            self.on_wait(handle, timeout)
        if handle.process.alive and self.clock is not None:
            # A bounded wait that hits its deadline consumes the whole window.
            self.clock.advance(timeout)
        return not handle.process.alive


class FakeShutdownEvent:
    """Stands in for threading.Event; each bounded wait advances the fake clock."""

    def __init__(self, clock, max_waits=None):
        self.clock = clock
        self.max_waits = max_waits
        self.waits = 0
        self.on_wait = None
        self._set = False

    def set(self):
        self._set = True

    def is_set(self):
        return self._set

    def wait(self, timeout=None):
        if self._set:
            return True
        self.waits += 1
        self.clock.advance(timeout or 0)
        if self.on_wait:
            self.on_wait(self.waits)
        if self.max_waits is not None and self.waits >= self.max_waits:
            self._set = True
        return self._set


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend(clock):
    return FakeBackend(clock)


@pytest.fixture
def log_file(tmp_path):
    path = tmp_path / "app.log"
    path.write_text("booting\n")
    return path


@pytest.fixture
def config(log_file):
    return Config(command="run-app", log_path=log_file, timeout=10, interval=2, grace_period=5, kill_timeout=2)


@pytest.fixture
def tracker(config, clock):
    return LogActivityTracker(config.timeout, clock=clock)


@pytest.fixture
def controller(backend, tracker, config):
    return ProcessController(backend, tracker, grace_period=config.grace_period, kill_timeout=config.kill_timeout)


@pytest.fixture
def shutdown_event(clock):
    return FakeShutdownEvent(clock)


@pytest.fixture
def loop(config, controller, tracker, shutdown_event, clock):
    return SupervisorLoop(config, controller=controller, tracker=tracker, shutdown_event=shutdown_event, clock=clock)
