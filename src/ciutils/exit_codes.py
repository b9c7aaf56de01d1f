"""Process exit codes following Unix conventions."""

import typing as t
from enum import IntEnum

__all__ = [
    "ExitCode",
    "MAX_EXIT_CODE",
    "is_valid_exit_code",
    "is_conventional_exit_code",
]

MAX_EXIT_CODE = 255
"""The largest status a process can portably report to its parent."""


class ExitCode(IntEnum):
    """Reserved exit codes.

    128 + n signals that the process was terminated by signal n.
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    MISUSE = 2
    CANNOT_EXECUTE = 126
    COMMAND_NOT_FOUND = 127
    FATAL_SIGNAL = 128
    SIGHUP = 129
    SIGINT = 130
    SIGQUIT = 131
    SIGILL = 132
    SIGTRAP = 133
    SIGABRT = 134
    SIGBUS = 135
    SIGFPE = 136
    SIGKILL = 137
    OUT_OF_RANGE = 255


_RESERVED = frozenset(ExitCode)


def is_valid_exit_code(code: t.Any) -> bool:
    """Check whether a code is one of the reserved exit codes."""
    if isinstance(code, bool) or not isinstance(code, int):
        return False
    return code in _RESERVED


def is_conventional_exit_code(code: t.Any) -> bool:
    """Check whether a code fits in the 0..255 status range."""
    if isinstance(code, bool) or not isinstance(code, int):
        return False
    return 0 <= code <= MAX_EXIT_CODE
