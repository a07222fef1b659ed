import logging
import threading
from typing import TYPE_CHECKING, Any, Optional

from logwatchdog import settings
from logwatchdog.errors import SpawnError
from logwatchdog.supervisor.process_utils import ProcessHandle, PsutilBackend
from logwatchdog.supervisor.shutdown import TerminationOutcome, graceful_shutdown_sequence

if TYPE_CHECKING:
    from .activity import LogActivityTracker

log = logging.getLogger(__name__)


class ProcessController:
    """
    Owns at most one child process.

    `start` and `terminate` are serialized, and `is_alive` never observes a
    half-replaced handle. Two children never run at the same time: a held
    child is always terminated before a new one is spawned.
    """

    def __init__(
        self,
        backend: Any = None,
        tracker: Optional["LogActivityTracker"] = None,
        grace_period: float = settings.GRACEFUL_SHUTDOWN_TIMEOUT,
        kill_timeout: float = settings.FORCED_KILL_TIMEOUT,
    ) -> None:
        self.backend = backend if backend is not None else PsutilBackend()
        self.tracker = tracker
        self.grace_period = grace_period
        self.kill_timeout = kill_timeout
        self._handle: Optional[ProcessHandle] = None
        self._lock = threading.RLock()

    @property
    def handle(self) -> Optional[ProcessHandle]:
        return self._handle

    def start(self, command: str) -> ProcessHandle:
        """
        Starts a new child running `command`, terminating any held child first.

        Resets the activity tracker so the fresh process gets a fresh grace window.

        :param command: The shell command to run.
        :return: The handle of the new child.
        :raises SpawnError: If the command cannot be started. No handle is held afterwards.
        """
        with self._lock:
            if self._handle is not None:
                self.terminate()

            log.info(f"Starting: {command}")
            try:
                handle = self.backend.spawn(command)
            except (OSError, ValueError) as e:
                log.error(f"Failed to start process '{command}': {e}")
                raise SpawnError(f"Cannot start process: {e}") from e

            self._handle = handle
            if self.tracker is not None:
                self.tracker.reset()
            log.info(f"Process started with PID: {handle.pid}")
            return handle

    def is_alive(self) -> bool:
        """
        Non-blocking liveness check.
        Clears the held handle if the child no longer exists.
        """
        with self._lock:
            if self._handle is None:
                return False
            if self.backend.is_running(self._handle):
                return True
            log.warning(f"Process PID {self._handle.pid} is no longer running.")
            self._handle = None
            return False

    def terminate(self) -> Optional[TerminationOutcome]:
        """
        Stops the held child: graceful request, bounded wait, then forced kill.

        The handle is cleared unconditionally, even if the child could not be reaped.

        :return: The termination outcome, or None if no child was held.
        """
        with self._lock:
            handle = self._handle
            if handle is None:
                return None
            try:
                return graceful_shutdown_sequence(self.backend, handle, self.grace_period, self.kill_timeout)
            finally:
                self._handle = None
