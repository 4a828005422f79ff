# hostprep - Core Module
"""
Core infrastructure for hostprep.
Configuration, audit logging, user resolution and shell command execution.
"""

from .config import Config
from .logger import AuditLogger, AuditEntry, ActionType, ActionStatus
from .current_user import CurrentUser, is_root
from .command_line import CommandLine, CommandError

__all__ = [
    "Config",
    "AuditLogger",
    "AuditEntry",
    "ActionType",
    "ActionStatus",
    "CurrentUser",
    "is_root",
    "CommandLine",
    "CommandError",
]

__version__ = "0.1.0"
