"""Local directory sink."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from sitepress.config.loader import LocalSinkSettings

from .base import PublishError, clear_directory, mirror_tree


@dataclass(slots=True)
class LocalDirectoryPublisher:
    settings: LocalSinkSettings
    logger: logging.Logger
    name: str = "local"

    def publish(self, source: Path, commit_message: str) -> str:
        output = self.settings.output_path
        if output is None:
            raise PublishError("Local output path is not configured.")
        try:
            output.mkdir(parents=True, exist_ok=True)
            clear_directory(output)
            copied = mirror_tree(source, output, self.logger)
        except OSError as exc:
            raise PublishError(f"Failed to write local output {output}: {exc}") from exc
        return f"Wrote {copied} files to local directory {output}"
