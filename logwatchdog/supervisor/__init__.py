"""
The Supervisor package.
Manages the lifecycle of the single supervised child process.

This package contains the SupervisorLoop and its collaborators, which
together handle starting, liveness checking, log activity tracking and
two-phase termination of the child.
"""
from .activity import Activity, LogActivityTracker
from .controller import ProcessController
from .loop import SupervisorLoop
from .process_utils import ProcessHandle, PsutilBackend
from .shutdown import TerminationOutcome

__all__ = [
    'Activity',
    'LogActivityTracker',
    'ProcessController',
    'ProcessHandle',
    'PsutilBackend',
    'SupervisorLoop',
    'TerminationOutcome',
]
