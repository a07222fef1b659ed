import logging
import sys
from pathlib import Path
from typing import Optional

from logwatchdog import settings


LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class SupervisorFormatter(logging.Formatter):
    """Decorates supervisor records; forwarded child output ('proc.*') stays raw."""

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT)

    def format(self, record):
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
    """
    Configures the root logger for the supervisor.
    This sets up a console handler and optionally a file handler,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_file: Where to also write the supervisor's own log. Defaults to
        the LOGWATCHDOG_LOG_FILE setting; None disables the file sink.
    """
    if log_file is None:
        log_file = settings.SUPERVISOR_LOG_FILE

    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(SupervisorFormatter())
    root_logger.addHandler(console_handler)

    # --- File Handler (optional, all levels) ---
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(SupervisorFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler at '{log_file}': {e}. Logging to file will be disabled.")
