"""
This module contains the default configuration settings for logwatchdog.
It defines supervision timings, termination windows and logging options.
Every value can be overridden through the environment or a `.env` file.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    """Reads a boolean flag from the environment."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('true', '1', 't', 'yes', 'y')


#* --- Supervision Defaults ---
DEFAULT_TIMEOUT = float(os.getenv("LOGWATCHDOG_TIMEOUT", "60"))   # seconds without log activity
DEFAULT_INTERVAL = float(os.getenv("LOGWATCHDOG_INTERVAL", "5"))  # seconds between checks
MIN_POLL_INTERVAL = 1.0

#* --- Termination Windows ---
GRACEFUL_SHUTDOWN_TIMEOUT = float(os.getenv("LOGWATCHDOG_GRACE_PERIOD", "5"))  # seconds before force-killing
FORCED_KILL_TIMEOUT = float(os.getenv("LOGWATCHDOG_KILL_TIMEOUT", "2"))        # seconds to reap after SIGKILL

#* --- Reporting ---
STATUS_REPORT_INTERVAL = 30  # seconds of inactivity between "waiting" status lines

#* --- Child Process ---
# When enabled, the child's stdout/stderr are piped into the supervisor's log
# under the 'proc.child' logger instead of being discarded.
FORWARD_CHILD_OUTPUT = _env_bool("LOGWATCHDOG_FORWARD_OUTPUT", False)
PROCESS_TITLE_PREFIX = "logwatchdog"

#* --- Logging ---
_log_file = os.getenv("LOGWATCHDOG_LOG_FILE")
SUPERVISOR_LOG_FILE = pathlib.Path(_log_file) if _log_file else None
