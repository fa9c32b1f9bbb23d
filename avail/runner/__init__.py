"""Subprocess execution for out-of-process checks."""

from .process import (
    CommandError,
    Process,
    ProcessError,
    ProcessSpawnError,
    ProcessWaitError,
    split_command,
)

__all__ = [
    "CommandError",
    "Process",
    "ProcessError",
    "ProcessSpawnError",
    "ProcessWaitError",
    "split_command",
]
