"""Sitepress: static snapshots of a dynamic site, published to one or more sinks."""

from __future__ import annotations

import tomllib
from functools import lru_cache
from importlib import metadata
from pathlib import Path

PACKAGE_NAME = "sitepress"


def _checkout_version() -> str | None:
    """`[project].version` of the enclosing source checkout, if this is one."""

    here = Path(__file__).resolve().parent
    for directory in here.parents:
        candidate = directory / "pyproject.toml"
        if not candidate.is_file():
            continue
        try:
            project = tomllib.loads(candidate.read_text(encoding="utf-8")).get("project", {})
        except (OSError, tomllib.TOMLDecodeError):
            return None
        if project.get("name") != PACKAGE_NAME:
            return None
        version = str(project.get("version") or "").strip()
        return version or None
    return None


@lru_cache(maxsize=1)
def get_version() -> str:
    """Return the running version, preferring a source checkout over installed metadata."""

    version = _checkout_version()
    if version:
        return version
    try:
        return metadata.version(PACKAGE_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
