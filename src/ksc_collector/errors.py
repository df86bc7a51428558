"""Exception hierarchy for the collector.

Every failure that should end an invocation derives from ``CollectorError`` so
the CLI can render it one way regardless of cause.
"""


class CollectorError(Exception):
    """Base class for terminal collection failures."""


class UnknownSubkeyError(CollectorError):
    """A virtual key needs a sub-value that is missing or not recognised."""

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"Unknown or missing subkey for '{key}'")


class BackendError(CollectorError):
    """The management server could not be reached or returned an error."""


class AbsentMetricError(CollectorError):
    """A metric path did not resolve while summing under the strict policy."""


class ConfigError(CollectorError):
    """The collector configuration is unreadable or invalid."""
