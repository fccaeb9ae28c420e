"""
w3store utilities.
"""

from w3store.utils.logging import configure_logging, get_logger
from w3store.utils.process import CommandResult, run_command, temporary_path

__all__ = [
    "get_logger",
    "configure_logging",
    "CommandResult",
    "run_command",
    "temporary_path",
]
