"""Core run components for Sitepress."""

from .executor import FetchError, Fetcher, FetchResult, TransientFetchError
from .lease import AlreadyRunningError, RunLease
from .progress import Progress, ProgressReporter
from .workspace import Workspace, WorkspaceError

__all__ = [
    "AlreadyRunningError",
    "FetchError",
    "FetchResult",
    "Fetcher",
    "Progress",
    "ProgressReporter",
    "RunLease",
    "TransientFetchError",
    "Workspace",
    "WorkspaceError",
]
