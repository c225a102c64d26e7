"""Zip archive sink."""

from __future__ import annotations

import logging
import os
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from sitepress.config.loader import ArchiveSinkSettings
from sitepress.core.workspace import is_directory_empty_recursive

from .base import PublishError


def archive_name(prefix: str, now: datetime | None = None) -> str:
    return f"{prefix}{(now or datetime.now()).strftime('%Y%m%d_%H%M%S')}.zip"


def write_archive(source: Path, destination: Path) -> int:
    """Zip `source` into `destination`; returns the number of files stored.

    Recursively empty directories and any `.zip` files already inside `source` are skipped.
    """

    stored = 0
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for dirpath, dirnames, filenames in os.walk(source):
            current = Path(dirpath)
            dirnames.sort()
            for dirname in dirnames:
                directory = current / dirname
                if not is_directory_empty_recursive(directory):
                    archive.write(directory, directory.relative_to(source).as_posix() + "/")
            for filename in sorted(filenames):
                if filename.lower().endswith(".zip"):
                    continue
                path = current / filename
                archive.write(path, path.relative_to(source).as_posix())
                stored += 1
    return stored


@dataclass(slots=True)
class ArchivePublisher:
    settings: ArchiveSinkSettings
    logger: logging.Logger
    name: str = "archive"

    def publish(self, source: Path, commit_message: str) -> str:
        output = self.settings.output_path
        if output is None:
            raise PublishError("Archive output path is not configured.")
        destination = output / archive_name(self.settings.prefix)
        try:
            output.mkdir(parents=True, exist_ok=True)
            stored = write_archive(source, destination)
        except (OSError, zipfile.BadZipFile) as exc:
            raise PublishError(f"Failed to create archive {destination}: {exc}") from exc
        size_mb = destination.stat().st_size / 1024 / 1024
        return f"Created archive {destination.name} ({stored} files, {size_mb:.2f} MB)"
