"""Exceptions raised by the supervisor core."""


class ConfigError(ValueError):
    """Raised when the supervisor configuration is invalid or cannot be prepared."""


class SpawnError(RuntimeError):
    """Raised when the child command cannot be started."""
