"""Run-private temporary directory holding the in-progress static tree."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

EXCLUDED_EXTENSIONS = frozenset(
    {
        "php", "php3", "php4", "php5", "php7", "phtml", "phps",
        "exe", "bat", "sh", "command", "com",
        "htpasswd", "ini", "conf", "config",
        "sql", "sqlite", "db",
        "git", "gitignore", "gitmodules", "svn",
        "log", "bak", "backup", "tmp", "temp",
    }
)  # fmt: skip

# Never published, whatever the user configured.
FORCE_EXCLUDE_PATTERNS = (
    "wp-content/sitepress-cache",
    "wp-content/uploads/wp2static-*",
    "wp-content/plugins/sitepress",
    "wp-content/plugins/wp2static",
    "wp-content/plugins/wp2static-addon-*",
    "wp-content/languages",
)

SITE_ICON_FILES = (
    "favicon.ico",
    "apple-touch-icon.png",
    "apple-touch-icon-precomposed.png",
    "browserconfig.xml",
    "manifest.json",
    "site.webmanifest",
)

PROTECTED_INCLUDE_DIRS = ("wp-admin", "wp-includes", "wp-content/plugins", "wp-content/mu-plugins")
PROGRESS_LOG_INTERVAL = 100

AssetTransform = Callable[[bytes, str], bytes]
RunLog = Callable[..., object]


class WorkspaceError(RuntimeError):
    """Raised when the workspace cannot be created or written."""


def is_excluded_file(name: str) -> bool:
    """Hidden files (other than `.htaccess`) and unsafe extensions are never copied."""

    if name.startswith(".") and name != ".htaccess":
        return True
    extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    return extension in EXCLUDED_EXTENSIONS


def is_directory_empty_recursive(path: Path) -> bool:
    """Return True when `path` holds no file that would survive the copy filters."""

    if not path.is_dir():
        return True
    try:
        entries = list(path.iterdir())
    except OSError:
        return True
    for entry in entries:
        if entry.is_dir():
            if not is_directory_empty_recursive(entry):
                return False
        elif not is_excluded_file(entry.name):
            return False
    return True


@dataclass(slots=True)
class CopyReport:
    files: int = 0
    errors: int = 0

    def merge(self, other: CopyReport) -> None:
        self.files += other.files
        self.errors += other.errors


@dataclass(slots=True)
class Workspace:
    """Exclusive scratch tree for one run; deleted by the orchestrator on every exit path."""

    root: Path
    logger: logging.Logger
    log: RunLog | None = field(default=None, repr=False)

    @classmethod
    def create(
        cls,
        parent: Path,
        name: str,
        logger: logging.Logger,
        log: RunLog | None = None,
    ) -> Workspace:
        """Create a fresh directory, deleting any leftover directory of the same name."""

        root = parent / name
        try:
            if root.exists():
                shutil.rmtree(root)
            root.mkdir(parents=True, mode=0o755)
        except OSError as exc:
            raise WorkspaceError(f"Failed to create workspace {root}: {exc}") from exc
        logger.debug("Created workspace %s", root)
        return cls(root=root, logger=logger, log=log)

    def _report(self, message: str, is_error: bool = False) -> None:
        if self.log is not None:
            self.log(message, is_error)
        elif is_error:
            self.logger.error(message)
        else:
            self.logger.info(message)

    def resolve(self, relative_path: str) -> Path:
        """Map a relative artifact path into the workspace, refusing escapes."""

        target = (self.root / relative_path.lstrip("/")).resolve()
        root = self.root.resolve()
        if target != root and root not in target.parents:
            raise WorkspaceError(f"Path escapes the workspace: {relative_path}")
        return target

    def write_artifact(self, relative_path: str, content: bytes) -> Path:
        target = self.resolve(relative_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise WorkspaceError(f"Failed to write {relative_path}: {exc}") from exc
        return target

    # -- asset phase ------------------------------------------------------

    def copy_tree(
        self,
        source: Path,
        target: str,
        *,
        transform: AssetTransform | None = None,
        log_progress: bool = False,
    ) -> CopyReport:
        """Copy a directory into the workspace, applying the copy filters.

        Errors are counted per file and reported as one aggregate line.
        """

        if not source.is_dir():
            self._report(f"Source directory does not exist: {source}", True)
            return CopyReport(errors=1)
        destination = self.resolve(target)
        report = self._copy_dir(source, destination, transform, log_progress, CopyReport())
        if report.errors:
            self._report(f"Errors while copying {source}: {report.errors} file(s)/directories", True)
        return report

    def _copy_dir(
        self,
        source: Path,
        destination: Path,
        transform: AssetTransform | None,
        log_progress: bool,
        report: CopyReport,
    ) -> CopyReport:
        if is_directory_empty_recursive(source):
            return report
        try:
            destination.mkdir(parents=True, exist_ok=True)
            entries = sorted(source.iterdir())
        except OSError as exc:
            self._report(f"Failed to prepare directory {destination}: {exc}", True)
            report.errors += 1
            return report

        for entry in entries:
            if entry.is_dir():
                self._copy_dir(entry, destination / entry.name, transform, log_progress, report)
                continue
            if is_excluded_file(entry.name):
                continue
            if self._copy_file(entry, destination / entry.name, transform):
                report.files += 1
                if log_progress and report.files % PROGRESS_LOG_INTERVAL == 0:
                    self._report(f"Copied {report.files} files ({source.name})")
            else:
                report.errors += 1
        return report

    def _copy_file(self, source: Path, destination: Path, transform: AssetTransform | None) -> bool:
        extension = source.suffix.lower().lstrip(".")
        try:
            if transform is not None and extension in ("css", "js"):
                destination.write_bytes(transform(source.read_bytes(), extension))
            else:
                shutil.copyfile(source, destination)
        except OSError as exc:
            self.logger.warning("Failed to copy %s: %s", source, exc)
            return False
        return True

    def copy_site_icons(self, site_root: Path | None) -> int:
        if site_root is None:
            return 0
        copied = 0
        for name in SITE_ICON_FILES:
            source = site_root / name
            if not source.is_file():
                continue
            try:
                shutil.copyfile(source, self.root / name)
            except OSError as exc:
                self._report(f"Failed to copy {name}: {exc}", True)
                continue
            copied += 1
            self._report(f"Copied {name}")
        return copied

    def write_robots_txt(self) -> None:
        try:
            (self.root / "robots.txt").write_bytes(b"")
        except OSError as exc:
            self._report(f"Failed to write robots.txt: {exc}", True)
            return
        self._report("Generated empty robots.txt")

    def copy_includes(
        self,
        paths: Sequence[str],
        site_root: Path | None,
        transform: AssetTransform | None = None,
    ) -> CopyReport:
        """Copy extra include paths by basename; each must resolve inside `site_root`."""

        report = CopyReport()
        if not paths:
            return report
        if site_root is None:
            self._report("Include paths ignored: site.site_root is not configured", True)
            return report

        root = site_root.resolve()
        protected = [(root / name).resolve() for name in PROTECTED_INCLUDE_DIRS]
        for raw in paths:
            candidate = Path(raw)
            if not candidate.is_absolute():
                candidate = root / candidate
            if not candidate.exists():
                self._report(f"Include path does not exist: {raw}", True)
                continue
            real = candidate.resolve()
            if real != root and root not in real.parents:
                self._report(f"Include path outside the site root skipped: {raw}", True)
                continue
            if any(real == p or p in real.parents for p in protected):
                self._report(f"Include path in a protected directory skipped: {raw}", True)
                continue
            if real.is_file():
                if self._copy_file(real, self.root / real.name, transform):
                    report.files += 1
                else:
                    report.errors += 1
            elif real.is_dir():
                report.merge(self.copy_tree(real, real.name, transform=transform))
        self._report("Copied included paths")
        return report

    def apply_exclusions(self, patterns: Iterable[str]) -> int:
        """Delete workspace entries matching each glob pattern; returns entries removed."""

        removed = 0
        for pattern in patterns:
            pattern = pattern.strip().lstrip("/")
            if not pattern:
                continue
            for match in sorted(self.root.glob(pattern)):
                try:
                    if match.is_dir() and not match.is_symlink():
                        shutil.rmtree(match)
                    elif match.exists() or match.is_symlink():
                        match.unlink()
                    else:
                        continue
                except OSError as exc:
                    self.logger.warning("Failed to remove excluded path %s: %s", match, exc)
                    continue
                removed += 1
        return removed

    # -- publish helpers --------------------------------------------------

    def list_files(self) -> list[str]:
        """Return every file as a sorted POSIX path relative to the workspace root."""

        files: list[str] = []
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for filename in filenames:
                full = Path(dirpath) / filename
                files.append(full.relative_to(self.root).as_posix())
        return sorted(files)

    def remove(self) -> None:
        if not self.root.exists():
            return
        try:
            shutil.rmtree(self.root)
        except OSError as exc:
            self.logger.error("Failed to remove workspace %s: %s", self.root, exc)
