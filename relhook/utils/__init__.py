"""Utility modules for relhook."""

from relhook.utils.audit import AuditLog, format_entry
from relhook.utils.logging import get_logger, setup_logging

__all__ = [
    "AuditLog",
    "format_entry",
    "get_logger",
    "setup_logging",
]
