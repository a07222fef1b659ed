"""
Logging module for the supervisor.
This module provides the root logger setup shared by the CLI and the core.
"""

from .setup import setup_logging, SupervisorFormatter

__all__ = ["setup_logging", "SupervisorFormatter"]
