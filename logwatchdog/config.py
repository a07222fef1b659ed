import math
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from logwatchdog import settings
from logwatchdog.errors import ConfigError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    """
    Immutable supervisor configuration.

    Created once at startup and handed to the supervisor core already
    validated. Durations are expressed in seconds.
    """
    command: str
    log_path: Path
    timeout: float = settings.DEFAULT_TIMEOUT
    interval: float = settings.DEFAULT_INTERVAL
    grace_period: float = settings.GRACEFUL_SHUTDOWN_TIMEOUT
    kill_timeout: float = settings.FORCED_KILL_TIMEOUT
    forward_output: bool = settings.FORWARD_CHILD_OUTPUT

    def __post_init__(self) -> None:
        if not self.command or not self.command.strip():
            raise ConfigError("The command to supervise must not be empty.")
        durations = (self.timeout, self.interval, self.grace_period, self.kill_timeout)
        if not all(math.isfinite(value) for value in durations):
            raise ConfigError("Durations must be finite numbers of seconds.")
        if self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive, got {self.timeout}.")
        if self.interval < settings.MIN_POLL_INTERVAL:
            raise ConfigError(
                f"Poll interval must be at least {settings.MIN_POLL_INTERVAL}s, got {self.interval}."
            )
        if self.grace_period < 0 or self.kill_timeout < 0:
            raise ConfigError("Termination windows must not be negative.")


def build_config(
    command: str,
    log_path: Union[str, Path],
    timeout: Optional[float] = None,
    interval: Optional[float] = None,
    **overrides,
) -> Config:
    """
    Builds a validated Config, falling back to the defaults from settings.

    An interval below the minimum is floored rather than rejected.

    :param command: The shell command to supervise.
    :param log_path: The log file whose activity is watched.
    :param timeout: Seconds without log activity before a restart.
    :param interval: Seconds between supervision ticks.
    :return: The validated Config.
    :raises ConfigError: If the values cannot form a valid configuration.
    """
    if timeout is None:
        timeout = settings.DEFAULT_TIMEOUT
    if interval is None:
        interval = settings.DEFAULT_INTERVAL

    if interval < settings.MIN_POLL_INTERVAL:
        log.warning(
            f"Interval ({interval}s) is too small, using the minimum of {settings.MIN_POLL_INTERVAL}s."
        )
        interval = settings.MIN_POLL_INTERVAL

    return Config(
        command=command,
        log_path=Path(log_path),
        timeout=float(timeout),
        interval=float(interval),
        **overrides,
    )


def prepare_log_file(log_path: Path) -> None:
    """
    Makes sure the watched log file and its parent directories exist.

    An existing file is left untouched. Failure here is fatal at startup.

    :param log_path: The log file to prepare.
    :raises ConfigError: If the directory or the file cannot be created.
    """
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Cannot create log directory '{log_path.parent}': {e}") from e

    if log_path.exists():
        return

    log.info(f"Log file does not exist, creating: {log_path}")
    try:
        log_path.touch()
    except OSError as e:
        raise ConfigError(f"Cannot create log file '{log_path}': {e}") from e
