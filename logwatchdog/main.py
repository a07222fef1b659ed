import sys
import math
import signal
import logging
import threading
from typing import List, Optional

import setproctitle

from logwatchdog import settings
from logwatchdog.config import Config, build_config, prepare_log_file
from logwatchdog.errors import ConfigError, SpawnError
from logwatchdog.log.setup import setup_logging
from logwatchdog.supervisor import SupervisorLoop

log = logging.getLogger("logwatchdog")

USAGE = """\
logwatchdog - restart a process when it exits or its log goes quiet

Usage: {prog} <command> <log_file> [timeout_sec] [interval_sec] [--verbose]

Arguments:
  command       - the command to supervise (quoted; run through the shell)
  log_file      - path of the log file to watch
  timeout_sec   - restart after this many seconds without log activity (default: {timeout:g})
  interval_sec  - check every this many seconds (default: {interval:g}, minimum: {minimum:g})

Examples:
  {prog} "python3 app.py > /tmp/app.log 2>&1" /tmp/app.log
  {prog} "java -jar app.jar" /var/log/app.log 120 10
  {prog} "./my_script.sh" /tmp/output.log 30 3

Notes:
  * The process is restarted when the log stops changing for the given time
  * The process is first asked to stop (SIGTERM), then killed (SIGKILL)
  * Missing log directories and files are created automatically
  * Stop the supervisor with Ctrl+C
"""


def print_usage(prog: str) -> None:
    print(USAGE.format(
        prog=prog,
        timeout=settings.DEFAULT_TIMEOUT,
        interval=settings.DEFAULT_INTERVAL,
        minimum=settings.MIN_POLL_INTERVAL,
    ))


def _parse_seconds(raw: str, name: str, default: float) -> float:
    """Parses a positive, finite number of seconds, falling back to the default with a warning."""
    try:
        value = float(raw)
    except ValueError:
        value = 0
    if math.isfinite(value) and value > 0:
        return value
    log.warning(f"Invalid {name} '{raw}', using default: {default:g}")
    return default


def parse_args(argv: List[str]) -> Optional[Config]:
    """
    Turns command-line arguments into a Config.

    :param argv: Arguments without the program name. `--verbose` is ignored here.
    :return: The Config, or None when the positionals are missing.
    :raises ConfigError: If the resulting configuration is invalid.
    """
    args = [arg for arg in argv if arg != "--verbose"]
    if len(args) < 2:
        return None

    command, log_file = args[0], args[1]
    timeout = settings.DEFAULT_TIMEOUT
    interval = settings.DEFAULT_INTERVAL
    if len(args) > 2:
        timeout = _parse_seconds(args[2], "timeout", timeout)
    if len(args) > 3:
        interval = _parse_seconds(args[3], "interval", interval)

    config = build_config(command, log_file, timeout=timeout, interval=interval)
    if config.timeout < config.interval:
        log.warning(
            f"Timeout ({config.timeout:g}s) is smaller than the interval ({config.interval:g}s), "
            "which may lead to frequent restarts."
        )
    return config


def install_signal_handlers(loop: SupervisorLoop) -> None:
    """Routes SIGINT/SIGTERM (and SIGBREAK on Windows) to the loop's shutdown request."""
    def handler(signum, frame):
        # Event.set() takes a lock the interrupted main thread may already hold.
        threading.Thread(
            target=loop.stop,
            args=(f"received signal {signal.Signals(signum).name}",),
            daemon=True,
            name="SignalHandlerThread",
        ).start()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)
    if hasattr(signal, "SIGBREAK"):
        signal.signal(signal.SIGBREAK, handler)


def main(argv: Optional[List[str]] = None) -> int:
    """
    The main entry point for the supervisor.

    :return: The process exit code. 0 on clean shutdown, 1 on setup or first-start failure.
    """
    if argv is None:
        argv = sys.argv[1:]

    setup_logging(logging.DEBUG if "--verbose" in argv else logging.INFO)

    try:
        config = parse_args(argv)
    except ConfigError as e:
        log.critical(f"Invalid configuration: {e}")
        return 1
    if config is None:
        print_usage("logwatchdog")
        return 1

    try:
        if settings.SUPERVISOR_LOG_FILE is not None and settings.SUPERVISOR_LOG_FILE.resolve() == config.log_path.resolve():
            raise ConfigError("The supervisor's own log file must not be the watched log file.")
        prepare_log_file(config.log_path)
    except ConfigError as e:
        log.critical(f"Setup failed: {e}")
        return 1

    setproctitle.setproctitle(f"{settings.PROCESS_TITLE_PREFIX}: {config.command}")

    loop = SupervisorLoop(config)
    install_signal_handlers(loop)

    log.info("=" * 20 + " Supervisor Starting " + "=" * 20)
    log.info("Press Ctrl+C to stop the supervisor.")
    try:
        loop.run()
    except SpawnError as e:
        log.critical(f"Could not start the process: {e}")
        return 1

    log.info("Supervisor finished.")
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
