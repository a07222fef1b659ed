import time
import logging
import threading
from typing import Any, Callable, Optional

from logwatchdog.config import Config
from logwatchdog.errors import SpawnError
from logwatchdog.supervisor.activity import Activity, LogActivityTracker
from logwatchdog.supervisor.controller import ProcessController
from logwatchdog.supervisor.process_utils import PsutilBackend

log = logging.getLogger(__name__)

REASON_PROCESS_EXITED = "process exited"
REASON_LOG_INACTIVE = "log inactive"


class SupervisorLoop:
    """
    Ties the process controller and the log activity tracker together on a
    fixed cadence. The only place restart policy lives.

    The loop is the sole driver of both collaborators. Shutdown is requested
    through `stop()`, which signal handlers and programmatic callers share.
    """

    def __init__(
        self,
        config: Config,
        controller: Optional[ProcessController] = None,
        tracker: Optional[LogActivityTracker] = None,
        shutdown_event: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._clock = clock
        self.tracker = tracker if tracker is not None else LogActivityTracker(config.timeout, clock=clock)
        if controller is None:
            controller = ProcessController(
                backend=PsutilBackend(forward_output=config.forward_output),
                tracker=self.tracker,
                grace_period=config.grace_period,
                kill_timeout=config.kill_timeout,
            )
        self.controller = controller
        self.shutdown_requested = shutdown_event if shutdown_event is not None else threading.Event()
        self.restart_count = 0
        self.skipped_ticks = 0

    def stop(self, reason: Optional[str] = None) -> None:
        """Requests shutdown. Safe to call from signal handlers and other threads."""
        if reason:
            log.info(f"Shutdown requested: {reason}")
        self.shutdown_requested.set()

    def run(self) -> None:
        """
        Starts the child and supervises it until shutdown is requested.

        The child is always terminated before this method returns or raises.

        :raises SpawnError: If the very first start fails.
        """
        log.info(f"Log file: {self.config.log_path}")
        log.info(f"Timeout: {self.config.timeout:g}s, check interval: {self.config.interval:g}s")
        start_time = self._clock()

        try:
            self._start()

            deadline = self._clock() + self.config.interval
            while not self.shutdown_requested.wait(max(0.0, deadline - self._clock())):
                self.tick()
                deadline = self._next_deadline(deadline)
        finally:
            self.controller.terminate()
            log.info(
                f"Supervisor stopped after {self._clock() - start_time:.0f}s "
                f"and {self.restart_count} restart(s)."
            )

    def tick(self) -> Optional[str]:
        """
        Runs one supervision check.

        :return: The restart reason if a restart was attempted, else None.
        """
        reason = None
        if not self.controller.is_alive():
            reason = REASON_PROCESS_EXITED
        else:
            try:
                activity = self.tracker.check(self.config.log_path)
            except OSError as e:
                log.error(f"Cannot read log file '{self.config.log_path}': {e}. Skipping this check.")
                return None
            if activity is Activity.STALE:
                reason = REASON_LOG_INACTIVE

        if reason:
            self.restart(reason)
        return reason

    def restart(self, reason: str) -> bool:
        """
        Terminates the current child (if any) and starts a new one.

        A failed start is logged and left for the next tick to retry.

        :return: True if a new child is running.
        """
        log.warning(f"Restarting process - reason: {reason}")
        self.restart_count += 1
        self.controller.terminate()

        if self.shutdown_requested.is_set():
            log.info("Shutdown requested during restart. Not starting a new process.")
            return False

        try:
            self._start()
        except SpawnError as e:
            log.error(f"Restart failed: {e}. Retrying in {self.config.interval:g}s.")
            return False

        log.info("Process restarted successfully.")
        return True

    def _start(self) -> None:
        self.controller.start(self.config.command)
        # The controller may hold no tracker (or another one); the grace
        # window restarts with every new child.
        self.tracker.reset()

    def _next_deadline(self, previous: float) -> float:
        """
        Returns the next tick deadline after `previous`.

        Ticks missed while the loop was busy are collapsed, not queued: the
        next deadline is the first grid point still in the future.
        """
        interval = self.config.interval
        deadline = previous + interval
        now = self._clock()
        if now >= deadline:
            missed = int((now - previous) // interval)
            self.skipped_ticks += missed
            log.debug(f"Supervision tick overran by {now - previous:.1f}s, skipping {missed} tick(s).")
            deadline = previous + (missed + 1) * interval
        return deadline
