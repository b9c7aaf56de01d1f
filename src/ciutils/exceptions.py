"""Exceptions for the ciutils package."""

import typing as t


class CIUtilsError(Exception):
    """Base class for all ciutils exceptions."""


class OperationTimeoutError(CIUtilsError, TimeoutError):
    """Raised when a supervised operation does not settle within its timeout."""

    def __init__(self, timeout_ms: float, message: t.Optional[str] = None) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(message or f"Operation timed out after {timeout_ms:g}ms")


class NotInCIError(CIUtilsError, RuntimeError):
    """Raised when a helper requires a CI platform that is not detected."""


class MissingTokenError(CIUtilsError, KeyError):
    """Raised when an expected authentication token is absent."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ConfigInvalidError(CIUtilsError, ValueError):
    """Raised when a configuration value cannot be converted or validated."""


class CommandError(CIUtilsError):
    """Base class for command execution errors."""


class CommandFailedError(CommandError):
    """Raised when a command cannot be spawned or exits with a non-zero code."""

    def __init__(self, message: str, returncode: t.Optional[int] = None) -> None:
        self.returncode = returncode
        super().__init__(message)


class CommandTimeoutError(CommandError, TimeoutError):
    """Raised when a command runs longer than its timeout and is killed."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__("Command timed out and took too long to exit")


class EventPayloadError(CIUtilsError):
    """Base class for errors loading the GitHub Actions event payload."""


class MissingEventPathError(EventPayloadError, LookupError):
    """Raised when GITHUB_EVENT_PATH is not set."""


class MissingEventNameError(EventPayloadError, LookupError):
    """Raised when no event name is given and GITHUB_EVENT_NAME is not set."""


class EventPayloadReadError(EventPayloadError):
    """Raised when the event payload file cannot be read or is not valid JSON."""


__all__ = [
    "CIUtilsError",
    "OperationTimeoutError",
    "NotInCIError",
    "MissingTokenError",
    "ConfigInvalidError",
    "CommandError",
    "CommandFailedError",
    "CommandTimeoutError",
    "EventPayloadError",
    "MissingEventPathError",
    "MissingEventNameError",
    "EventPayloadReadError",
]
