import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from .process_utils import ProcessHandle

log = logging.getLogger(__name__)


class TerminationPhase(Enum):
    RUNNING = "running"
    GRACEFUL_WAIT = "graceful_wait"
    FORCED_WAIT = "forced_wait"
    EXITED = "exited"
    CLEARED = "cleared"


class TerminationOutcome(Enum):
    EXITED = "exited"        # left within the grace window
    KILLED = "killed"        # reaped after the forced request
    ORPHANED = "orphaned"    # not reaped within the secondary window


def graceful_shutdown_sequence(
    backend: Any,
    handle: "ProcessHandle",
    grace_period: float,
    kill_timeout: float,
    on_phase: Optional[Callable[[TerminationPhase], None]] = None,
) -> TerminationOutcome:
    """
    Runs the two-phase shutdown for a single child.

    Running -> GracefulWait -> (Exited | ForcedWait) -> Cleared. Each wait is
    bounded: the child's exit races the deadline and never outlives it.

    :param backend: The process backend owning the child.
    :param handle: The child to stop.
    :param grace_period: Seconds to wait after the graceful request.
    :param kill_timeout: Seconds to wait for the child to be reaped after the forced request.
    :param on_phase: Optional observer called on every phase transition.
    :return: How the child left.
    """
    def enter(phase: TerminationPhase) -> None:
        log.debug(f"PID {handle.pid}: {phase.value}")
        if on_phase:
            on_phase(phase)

    enter(TerminationPhase.RUNNING)
    log.info(f"Stopping process PID {handle.pid}")
    backend.terminate(handle)

    enter(TerminationPhase.GRACEFUL_WAIT)
    if backend.wait(handle, grace_period):
        enter(TerminationPhase.EXITED)
        log.info(f"Process PID {handle.pid} exited gracefully.")
        outcome = TerminationOutcome.EXITED
    else:
        log.warning(f"Process PID {handle.pid} did not exit within {grace_period:g}s. Forcing shutdown (SIGKILL)...")
        backend.kill(handle)

        enter(TerminationPhase.FORCED_WAIT)
        if backend.wait(handle, kill_timeout):
            log.info(f"Process PID {handle.pid} was killed.")
            outcome = TerminationOutcome.KILLED
        else:
            log.warning(f"Process PID {handle.pid} was not reaped within {kill_timeout:g}s and may be orphaned.")
            outcome = TerminationOutcome.ORPHANED

    enter(TerminationPhase.CLEARED)
    return outcome
