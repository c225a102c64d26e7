"""Progress record and run log reporting."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sitepress.storage import Database, LogEntry

from .lease import LEASE_NAME

PROGRESS_NAME = "generation_progress"
DEFAULT_PROGRESS_TTL = 3600


@dataclass(slots=True)
class Progress:
    current: int = 0
    total: int = 0
    status: str = ""
    percentage: int = 0


def compute_percentage(current: int, total: int) -> int:
    if total <= 0:
        return 0
    return max(0, min(100, round(current * 100 / total)))


@dataclass(slots=True)
class ProgressReporter:
    """Write-only observer interface used by the orchestrator."""

    database: Database
    logger: logging.Logger
    ttl_seconds: int = DEFAULT_PROGRESS_TTL

    def update_progress(self, current: int, total: int, status: str) -> Progress:
        progress = Progress(
            current=current,
            total=total,
            status=status,
            percentage=compute_percentage(current, total),
        )
        self.database.set_transient(PROGRESS_NAME, asdict(progress), self.ttl_seconds)
        return progress

    def get_progress(self) -> Progress:
        stored = self.database.get_transient(PROGRESS_NAME)
        if not isinstance(stored, dict):
            return Progress()
        return Progress(
            current=int(stored.get("current", 0)),
            total=int(stored.get("total", 0)),
            status=str(stored.get("status", "")),
            percentage=int(stored.get("percentage", 0)),
        )

    def clear_progress(self) -> None:
        self.database.delete_transient(PROGRESS_NAME)

    def add_log(self, message: str, is_error: bool = False) -> LogEntry:
        entry = self.database.append_log(message, is_error=is_error)
        if is_error:
            self.logger.error(message)
        else:
            self.logger.info(message)
        return entry

    def get_logs(self, offset: int = 0) -> list[LogEntry]:
        return self.database.get_logs(offset)

    def clear_logs(self) -> bool:
        """Clear the run log; refused (returns False) while a run is active."""

        if self.database.get_transient(LEASE_NAME) is not None:
            return False
        self.database.clear_logs()
        return True
