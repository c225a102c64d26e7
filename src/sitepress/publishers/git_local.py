"""Local git repository sink."""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from sitepress.config.loader import GitLocalSinkSettings

from .base import PublishError, clear_directory, mirror_tree

ALLOWED_GIT_PATHS = (
    "/usr/bin/git",
    "/usr/local/bin/git",
    "/opt/homebrew/bin/git",
    "/opt/local/bin/git",
)
ALLOWED_GIT_DIRS = ("/usr/bin", "/usr/local/bin", "/opt/homebrew/bin", "/opt/local/bin")
GIT_TIMEOUT_SECONDS = 600

_CREDENTIAL_URL = re.compile(r"https?://[^@\s]+@[^\s]+")
_IPV4 = re.compile(r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}")
_WINDOWS_PATH = re.compile(r"[A-Z]:\\[^\s:]+", re.IGNORECASE)
_POSIX_PATH = re.compile(r"(?<![\w:/])/[^\s:]+")


def _is_allowed_dir(directory: str) -> bool:
    return any(
        directory == allowed or directory.startswith(allowed + "/") for allowed in ALLOWED_GIT_DIRS
    )


def find_git_executable(candidates: Sequence[str] = ALLOWED_GIT_PATHS) -> str | None:
    """Return the canonical path of the first allow-listed git binary, or None.

    Each candidate is resolved through symlinks and must still be named `git` and live in
    an allow-listed directory.
    """

    for candidate in candidates:
        if not os.path.isfile(candidate) or not os.access(candidate, os.X_OK):
            continue
        real = os.path.realpath(candidate)
        if os.path.basename(real) != "git":
            continue
        if _is_allowed_dir(os.path.dirname(real)):
            return real
    return None


def sanitize_git_error(output: str) -> str:
    """Redact credentials, IP addresses and filesystem paths from git output."""

    message = output.strip()
    if not message:
        return ""
    message = _CREDENTIAL_URL.sub("https://[credentials]@[remote]", message)
    message = _IPV4.sub("[ip]", message)
    message = _WINDOWS_PATH.sub("[path]", message)
    return _POSIX_PATH.sub("[path]", message)


@dataclass(slots=True)
class GitResult:
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(slots=True)
class GitRepositoryPublisher:
    """Commit the workspace onto a branch of an existing local repository."""

    settings: GitLocalSinkSettings
    logger: logging.Logger
    git_candidates: Sequence[str] = ALLOWED_GIT_PATHS
    name: str = "git_local"

    def _git(self, work_dir: Path, *args: str) -> GitResult:
        # Re-resolved on every call so a swapped binary is never executed.
        executable = find_git_executable(self.git_candidates)
        if executable is None:
            raise PublishError("git executable not found in the allowed locations.")
        command = [executable, *args]
        self.logger.debug("Running %s (cwd=%s)", shlex.join(command), work_dir)
        try:
            completed = subprocess.run(
                command,
                cwd=work_dir,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT_SECONDS,
                check=False,
                env={**os.environ, "LC_ALL": "C"},
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise PublishError(f"git {args[0]} could not be run: {exc}") from exc
        return GitResult(completed.returncode, (completed.stdout + completed.stderr).strip())

    def _checkout_branch(self, work_dir: Path, branch: str) -> None:
        exists = self._git(work_dir, "rev-parse", "--verify", "--quiet", branch).ok
        has_history = self._git(work_dir, "rev-parse", "--verify", "--quiet", "HEAD").ok
        current = self._git(work_dir, "symbolic-ref", "--short", "-q", "HEAD")
        current_branch = current.output if current.ok else ""

        if exists:
            if current_branch == branch:
                return
            self.logger.info("Switching to branch '%s'", branch)
            result = self._git(work_dir, "checkout", branch)
        elif has_history:
            self.logger.info("Creating branch '%s'", branch)
            result = self._git(work_dir, "checkout", "-b", branch)
        else:
            self.logger.info("Creating orphan branch '%s' in empty repository", branch)
            result = self._git(work_dir, "checkout", "--orphan", branch)
        if not result.ok:
            raise PublishError(f"Failed to switch to branch {branch}: {sanitize_git_error(result.output)}")

    def publish(self, source: Path, commit_message: str) -> str:
        work_dir = self.settings.work_dir
        branch = self.settings.branch
        if work_dir is None:
            raise PublishError("Git work directory is not configured.")
        if not work_dir.is_dir():
            raise PublishError("Git work directory does not exist.")
        if not (work_dir / ".git").is_dir():
            raise PublishError("Git work directory is not a git repository.")
        if find_git_executable(self.git_candidates) is None:
            raise PublishError("git executable not found in the allowed locations.")

        self._checkout_branch(work_dir, branch)

        try:
            clear_directory(work_dir, keep=(".git",))
            copied = mirror_tree(source, work_dir, self.logger)
        except OSError as exc:
            raise PublishError(f"Failed to refresh git work tree: {exc}") from exc

        result = self._git(work_dir, "add", "-A")
        if not result.ok:
            raise PublishError(f"git add failed: {sanitize_git_error(result.output)}")

        result = self._git(work_dir, "commit", "-m", commit_message)
        if result.ok:
            summary = f"Committed {copied} files to branch '{branch}'"
        elif "nothing to commit" in result.output:
            summary = f"No changes to commit on branch '{branch}'"
        else:
            raise PublishError(f"git commit failed: {sanitize_git_error(result.output)}")

        if self.settings.push_remote:
            result = self._git(work_dir, "push", self.settings.remote, branch)
            if not result.ok:
                detail = sanitize_git_error(result.output)
                raise PublishError(f"git push failed{': ' + detail if detail else ''}")
            summary += f", pushed to '{self.settings.remote}'"
        return summary
