"""Tests for SupervisorLoop restart policy, shutdown handling and tick scheduling."""

import pytest

from logwatchdog.errors import SpawnError
from logwatchdog.supervisor.controller import ProcessController
from logwatchdog.supervisor.loop import REASON_LOG_INACTIVE, REASON_PROCESS_EXITED, SupervisorLoop


def _append(path, text="line\n"):
    with path.open("a") as f:
        f.write(text)


class TestTick:

    def test_alive_child_with_growing_log_is_never_restarted(self, loop, controller, backend, log_file, clock):
        controller.start("run-app")
        for i in range(30):
            clock.advance(2)
            if i % 4 == 0:
                _append(log_file)  # every 8s, inside the 10s timeout
            assert loop.tick() is None
        assert len(backend.processes) == 1

    def test_exited_child_is_restarted_once(self, loop, controller, backend, tracker, log_file, clock):
        controller.start("run-app")
        clock.advance(2)
        loop.tick()
        backend.processes[0].alive = False

        clock.advance(2)
        assert loop.tick() == REASON_PROCESS_EXITED
        assert len(backend.processes) == 2
        assert tracker.baseline is None

        clock.advance(2)
        assert loop.tick() is None
        assert tracker.baseline is not None
        assert loop.restart_count == 1

    def test_exited_child_is_not_terminated_again(self, loop, controller, backend, clock):
        controller.start("run-app")
        backend.processes[0].alive = False

        loop.tick()

        assert backend.processes[0].signals == []

    def test_stale_log_restarts_once_per_episode(self, loop, controller, backend, log_file, clock):
        controller.start("run-app")
        restarts = []
        for _ in range(13):  # 26 seconds
            clock.advance(2)
            reason = loop.tick()
            if reason:
                restarts.append((clock.now, reason))

        # Warm-up at 1002, silence exceeds 10s at 1014, next warm-up at 1016, next stale at 1028.
        assert restarts == [(1014.0, REASON_LOG_INACTIVE)]
        assert len(backend.processes) == 2
        assert backend.processes[0].signals == ["TERM"]

    def test_unreadable_log_skips_the_tick(self, loop, controller, backend, tracker, log_file, clock):
        controller.start("run-app")
        clock.advance(2)
        loop.tick()
        baseline, last_change = tracker.baseline, tracker.last_change
        log_file.unlink()

        for _ in range(10):
            clock.advance(2)
            assert loop.tick() is None

        assert len(backend.processes) == 1
        assert backend.running == backend.processes
        assert tracker.baseline == baseline
        assert tracker.last_change == last_change

    def test_failing_start_is_retried_every_tick(self, loop, controller, backend, clock):
        controller.start("run-app")
        backend.spawn_error = OSError("exec format error")
        backend.processes[0].alive = False

        for _ in range(5):
            clock.advance(2)
            assert loop.tick() == REASON_PROCESS_EXITED
            assert controller.handle is None

        assert backend.spawn_attempts == 6
        assert loop.restart_count == 5

        backend.spawn_error = None
        clock.advance(2)
        assert loop.tick() == REASON_PROCESS_EXITED
        assert controller.is_alive()


class TestRun:

    def test_first_start_failure_is_fatal(self, loop, backend, shutdown_event):
        backend.spawn_error = OSError("no such shell")

        with pytest.raises(SpawnError):
            loop.run()
        assert shutdown_event.waits == 0
        assert backend.running == []

    def test_shutdown_terminates_the_child(self, loop, backend, shutdown_event, log_file):
        shutdown_event.on_wait = lambda waits: _append(log_file)
        shutdown_event.max_waits = 4

        loop.run()

        assert len(backend.processes) == 1
        assert backend.processes[0].signals == ["TERM"]
        assert backend.running == []
        assert loop.controller.handle is None

    def test_stop_requested_programmatically(self, loop, backend, shutdown_event):
        shutdown_event.on_wait = lambda waits: loop.stop("test finished") if waits == 3 else None

        loop.run()

        assert shutdown_event.waits == 3
        assert backend.running == []

    def test_ticks_follow_the_interval(self, loop, backend, shutdown_event, clock):
        ticks = []
        loop.tick = lambda: ticks.append(clock.now)
        shutdown_event.max_waits = 4

        loop.run()

        assert ticks == [1002.0, 1004.0, 1006.0]

    def test_staleness_scenario_end_to_end(self, loop, backend, shutdown_event):
        shutdown_event.max_waits = 13  # 24 seconds of ticks

        loop.run()

        assert loop.restart_count == 1
        assert len(backend.processes) == 2
        assert backend.running == []

    def test_grace_window_restarts_without_a_controller_tracker(self, config, backend, shutdown_event, clock):
        loop = SupervisorLoop(config, controller=ProcessController(backend), shutdown_event=shutdown_event, clock=clock)
        shutdown_event.max_waits = 13  # 24 seconds of ticks against a silent log

        loop.run()

        # Stale at 1014 only; the new child gets a fresh window until 1028.
        assert loop.restart_count == 1
        assert len(backend.processes) == 2

    def test_shutdown_mid_grace_wait_still_kills(self, loop, backend, shutdown_event):
        backend.ignore_term = True

        def stop_during_grace(handle, timeout):
            if timeout == 5:
                loop.stop("operator interrupt")

        backend.on_wait = stop_during_grace

        loop.run()  # only returns after the stale-log restart was interrupted

        child = backend.processes[0]
        assert child.signals == ["TERM", "KILL"]
        assert len(backend.processes) == 1
        assert backend.running == []
        assert loop.controller.handle is None

    def test_unexpected_error_still_terminates_the_child(self, loop, backend, tracker):
        def broken_check(path):
            raise RuntimeError("boom")

        tracker.check = broken_check

        with pytest.raises(RuntimeError):
            loop.run()
        assert backend.running == []


class TestTickScheduling:

    def test_on_time_tick(self, loop, clock):
        previous = clock.now
        clock.advance(0.5)
        assert loop._next_deadline(previous) == previous + 2
        assert loop.skipped_ticks == 0

    def test_overrun_collapses_missed_ticks(self, loop, clock):
        previous = clock.now
        clock.advance(7)  # ticks due at +2, +4 and +6 were missed

        assert loop._next_deadline(previous) == previous + 8
        assert loop.skipped_ticks == 3

    def test_slow_restart_does_not_queue_ticks(self, loop, backend, shutdown_event, clock):
        backend.ignore_term = True
        backend.unkillable = True  # every termination burns 5 + 2 seconds
        ticks = []
        original_tick = loop.tick

        def recording_tick():
            ticks.append(clock.now)
            return original_tick()

        loop.tick = recording_tick
        shutdown_event.max_waits = 10

        loop.run()

        gaps = [b - a for a, b in zip(ticks, ticks[1:])]
        assert all(gap >= 2 for gap in gaps)
        assert loop.skipped_ticks > 0
