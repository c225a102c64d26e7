"""Run-exclusivity lease backed by an expiring transient."""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Any

from sitepress.storage import Database

LEASE_NAME = "generation_running"
DEFAULT_LEASE_SECONDS = 3600


class AlreadyRunningError(RuntimeError):
    """Raised when another run holds the lease."""


@dataclass(slots=True)
class RunLease:
    """At most one run may hold the lease; it expires on its own if never released."""

    database: Database
    logger: logging.Logger
    ttl_seconds: int = DEFAULT_LEASE_SECONDS
    owner: str = field(default_factory=lambda: uuid.uuid4().hex)
    _held: bool = field(default=False, init=False, repr=False)

    def acquire(self) -> None:
        marker = {"owner": self.owner, "pid": os.getpid()}
        if not self.database.add_transient(LEASE_NAME, marker, self.ttl_seconds):
            raise AlreadyRunningError("A generation run is already in progress.")
        self._held = True
        self.logger.debug("Acquired run lease owner=%s ttl=%ss", self.owner, self.ttl_seconds)

    def release(self) -> None:
        """Clear the marker unconditionally."""

        self.database.delete_transient(LEASE_NAME)
        if self._held:
            self.logger.debug("Released run lease owner=%s", self.owner)
        self._held = False

    def is_held(self) -> bool:
        """Return True while any unexpired run marker exists."""

        return self.database.get_transient(LEASE_NAME) is not None

    def __enter__(self) -> RunLease:
        self.acquire()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()
