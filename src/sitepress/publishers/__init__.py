"""Publish destinations for a finished workspace tree."""

from __future__ import annotations

import logging

from sitepress.config import Config, CredentialStore

from .archive import ArchivePublisher
from .base import Publisher, PublishError
from .git_local import GitRepositoryPublisher, find_git_executable, sanitize_git_error
from .github import GitHubAPIError, GitHubClient, GitHubPublisher, plan_batches
from .local import LocalDirectoryPublisher


def build_publishers(
    config: Config, credentials: CredentialStore, logger: logging.Logger
) -> list[Publisher]:
    """Instantiate every enabled sink in publish order."""

    factories = {
        "local": lambda: LocalDirectoryPublisher(config.sinks.local, logger),
        "github": lambda: GitHubPublisher(config.sinks.github, credentials, logger),
        "git_local": lambda: GitRepositoryPublisher(config.sinks.git_local, logger),
        "archive": lambda: ArchivePublisher(config.sinks.archive, logger),
    }
    return [factories[name]() for name in config.sinks.enabled_names()]


__all__ = [
    "ArchivePublisher",
    "GitHubAPIError",
    "GitHubClient",
    "GitHubPublisher",
    "GitRepositoryPublisher",
    "LocalDirectoryPublisher",
    "PublishError",
    "Publisher",
    "build_publishers",
    "find_git_executable",
    "plan_batches",
    "sanitize_git_error",
]
