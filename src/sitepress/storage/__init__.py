"""Storage helpers for Sitepress."""

from .db import Database, LogEntry

__all__ = ["Database", "LogEntry"]
