"""Health subsystem: check strategies, probes, on-disk state store."""

from .checks import Check, CheckError, ExecCheck, ShellCheck, StatusCheck, build_check
from .probe import Probe
from .proxy import ProxyError, build_client
from .store import StateStore

__all__ = [
    "Check",
    "CheckError",
    "ExecCheck",
    "Probe",
    "ProxyError",
    "ShellCheck",
    "StateStore",
    "StatusCheck",
    "build_check",
    "build_client",
]
