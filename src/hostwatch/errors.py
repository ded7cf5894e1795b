"""Exception types raised by hostwatch."""

from __future__ import annotations


class HostwatchError(Exception):
    """Base class for hostwatch errors."""


class ConfigError(HostwatchError):
    """Configuration values are invalid."""


class StoreNotInitializedError(HostwatchError):
    """A store operation was attempted before the store was opened."""

    def __init__(self, message: str = "Metric store not initialized") -> None:
        super().__init__(message)


class CommandError(HostwatchError):
    """An external command could not be run or exited with an error."""

    def __init__(self, args: list[str], reason: str) -> None:
        self.command = list(args)
        self.reason = reason
        super().__init__(f"{' '.join(args)}: {reason}")
