import sys
import time
import psutil
import logging
import threading
import subprocess
from dataclasses import dataclass, field
from typing import IO, Any, Dict, Iterable, List

log = logging.getLogger(__name__)

CHILD_LOGGER_NAME = "proc.child"


@dataclass(frozen=True)
class ProcessHandle:
    """Reference to the currently supervised child: its PID and OS handle."""
    pid: int
    process: Any = field(default=None, compare=False, repr=False)


#* --- Process Creation ---
def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.CREATE_NO_WINDOW}
    # A new session keeps terminal signals (Ctrl+C) away from the child;
    # the supervisor alone decides when it is stopped.
    return {"start_new_session": True}


def _forward_stream(stream: IO[bytes], level: int) -> None:
    """Logs every non-empty line of a child stream until it closes."""
    child_logger = logging.getLogger(CHILD_LOGGER_NAME)
    with stream:
        for raw in stream:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                child_logger.log(level, line)


def forward_child_output(process: subprocess.Popen) -> None:
    """Drains the child's stdout (INFO) and stderr (ERROR) into the log on daemon threads."""
    for stream, level, suffix in ((process.stdout, logging.INFO, "stdout"), (process.stderr, logging.ERROR, "stderr")):
        if stream is not None:
            threading.Thread(target=_forward_stream, args=(stream, level), daemon=True, name=f"child-{suffix}").start()


#* --- Process Tree ---
def _process_tree(process: psutil.Process) -> List[psutil.Process]:
    """Returns the process followed by all of its descendants."""
    try:
        return [process] + process.children(recursive=True)
    except psutil.NoSuchProcess:
        return [process]
    except psutil.AccessDenied:
        log.warning(f"Cannot list children of PID {process.pid}, signalling it alone.")
        return [process]


def _is_running(proc: psutil.Process) -> bool:
    """Zombies count as gone; processes we may not inspect count as running."""
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.Error:
        return True


class PsutilBackend:
    """
    Spawns and signals real OS processes through psutil.

    This is the process backend used by ProcessController. Any object with
    the same five methods (spawn, is_running, terminate, kill, wait) can
    stand in for it.

    Termination works on the whole process tree: `terminate` remembers every
    descendant it signalled, and `wait`/`kill` keep covering them after the
    shell itself has gone, so a pipeline member that ignores SIGTERM is
    still found and killed.
    """

    def __init__(self, forward_output: bool = False) -> None:
        self.forward_output = forward_output
        self._trees: Dict[int, List[psutil.Process]] = {}

    def spawn(self, command: str) -> ProcessHandle:
        """
        Starts `command` through the system shell so pipes and redirections work.

        :raises OSError: If the shell cannot be executed.
        """
        popen_kwargs = _get_popen_creation_flags()
        output = subprocess.PIPE if self.forward_output else subprocess.DEVNULL

        p = psutil.Popen(command, shell=True, stdin=subprocess.DEVNULL, stdout=output, stderr=output, **popen_kwargs)

        if self.forward_output:
            forward_child_output(p)
        self._trees.pop(p.pid, None)
        return ProcessHandle(pid=p.pid, process=p)

    def is_running(self, handle: ProcessHandle) -> bool:
        """Non-blocking liveness check of the shell. Reaps it if it has exited."""
        proc = handle.process
        if proc.poll() is not None:
            return False
        return _is_running(proc)

    def _tree(self, handle: ProcessHandle) -> List[psutil.Process]:
        """The remembered tree merged with the descendants visible right now."""
        known = self._trees.get(handle.pid, [])
        current = _process_tree(handle.process)
        merged = list(current) + [p for p in known if p not in current]
        self._trees[handle.pid] = merged
        return merged

    @staticmethod
    def _signal_all(procs: Iterable[psutil.Process], action: str) -> None:
        for proc in procs:
            try:
                log.debug(f"Sending {action} to PID {proc.pid}")
                getattr(proc, action)()
            except psutil.NoSuchProcess:
                log.debug(f"Process {proc.pid} no longer exists, skipping {action}.")
            except psutil.AccessDenied as e:
                log.error(f"Not allowed to {action} PID {proc.pid}: {e}")

    def terminate(self, handle: ProcessHandle) -> None:
        """Sends SIGTERM to the child and all of its descendants."""
        self._signal_all(self._tree(handle), "terminate")

    def kill(self, handle: ProcessHandle) -> None:
        """Forcefully kills whatever is left of the child's tree."""
        survivors = [p for p in self._tree(handle) if _is_running(p)]
        log.warning(f"Killing {len(survivors)} stubborn process(es) of PID {handle.pid}.")
        self._signal_all(survivors, "kill")

    def wait(self, handle: ProcessHandle, timeout: float) -> bool:
        """
        Waits at most `timeout` seconds for the child and every remembered
        descendant to exit.

        :return: True if the whole tree is gone, False on deadline.
        """
        deadline = time.monotonic() + timeout
        alive = self._trees.get(handle.pid) or [handle.process]
        while True:
            try:
                _, alive = psutil.wait_procs(alive, timeout=max(0.0, min(0.1, deadline - time.monotonic())))
            except psutil.NoSuchProcess:
                pass
            # Reparented descendants may linger as zombies nobody reaps.
            alive = [p for p in alive if _is_running(p)]
            if not alive:
                self._trees.pop(handle.pid, None)
                return True
            if time.monotonic() >= deadline:
                return False
