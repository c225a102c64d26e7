"""Publisher protocol and filesystem helpers shared by the directory-based sinks."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Collection
from pathlib import Path
from typing import Protocol

from sitepress.core.workspace import is_directory_empty_recursive, is_excluded_file


class PublishError(RuntimeError):
    """Raised when a sink cannot complete."""


class Publisher(Protocol):
    """A publish destination for a finished workspace tree."""

    name: str

    def publish(self, source: Path, commit_message: str) -> str:
        """Publish `source`; returns a one-line summary or raises `PublishError`."""


def clear_directory(path: Path, keep: Collection[str] = ()) -> None:
    """Delete everything directly inside `path` except the names in `keep`."""

    for entry in path.iterdir():
        if entry.name in keep:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def mirror_tree(source: Path, destination: Path, logger: logging.Logger) -> int:
    """Copy `source` into `destination`, pruning empty directories; returns files copied."""

    copied = 0
    destination.mkdir(parents=True, exist_ok=True)
    for entry in sorted(source.iterdir()):
        target = destination / entry.name
        if entry.is_dir():
            if is_directory_empty_recursive(entry):
                continue
            copied += mirror_tree(entry, target, logger)
        elif not is_excluded_file(entry.name):
            shutil.copy2(entry, target)
            copied += 1
    logger.debug("Mirrored %s -> %s", source, destination)
    return copied
