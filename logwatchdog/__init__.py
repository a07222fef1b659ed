"""
logwatchdog package.

A process supervisor that restarts a command when it exits or when its
log file stops showing activity.
"""

__version__ = "0.1.0"
