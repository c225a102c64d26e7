"""GitHub sink: batch commits through the Git Data API."""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from sitepress import get_version
from sitepress.config import CredentialStore
from sitepress.config.loader import GitHubSinkSettings
from sitepress.core.executor import chunked

from .base import PublishError

API_VERSION = "2022-11-28"
BOOTSTRAP_FILE = ".nojekyll"
MAX_ATTEMPTS = 3


class GitHubAPIError(PublishError):
    """A GitHub API call failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


def _should_retry(exc: BaseException) -> bool:
    return isinstance(exc, GitHubAPIError) and exc.retryable


def plan_batches(paths: Sequence[str], batch_size: int) -> list[list[str]]:
    """Split `paths` into ordered batches; every path lands in exactly one batch."""

    return chunked(paths, batch_size)


@dataclass(slots=True)
class GitHubClient:
    """Thin Git Data API client with retries for 429/5xx and transport errors."""

    repo: str
    token: str
    api_url: str = "https://api.github.com"
    timeout: float = 60.0
    transport: httpx.BaseTransport | None = None
    _client: httpx.Client | None = field(default=None, init=False, repr=False)

    @property
    def owner(self) -> str:
        return self.repo.split("/", 1)[0]

    @property
    def repo_name(self) -> str:
        return self.repo.split("/", 1)[1]

    def _http(self) -> httpx.Client:
        if self._client is None:
            options: dict[str, Any] = {
                "base_url": self.api_url.rstrip("/"),
                "timeout": self.timeout,
                "headers": {
                    "Accept": "application/vnd.github+json",
                    "Authorization": f"Bearer {self.token}",
                    "User-Agent": f"sitepress/{get_version()}",
                    "X-GitHub-Api-Version": API_VERSION,
                },
            }
            if self.transport is not None:
                options["transport"] = self.transport
            self._client = httpx.Client(**options)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        allow: Sequence[int] = (),
    ) -> httpx.Response:
        """Send a request; statuses in `allow` are returned instead of raised."""

        retrying = Retrying(
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=wait_exponential_jitter(multiplier=1, max=10),
            retry=retry_if_exception(_should_retry),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                try:
                    response = self._http().request(method, path, json=json)
                except httpx.TransportError as exc:
                    raise GitHubAPIError(f"{method} {path} failed: {exc}") from exc
                if response.is_success or response.status_code in allow:
                    return response
                raise GitHubAPIError(
                    f"{method} {path} returned {response.status_code}: {_error_message(response)}",
                    status_code=response.status_code,
                )
        raise GitHubAPIError(f"{method} {path} was not attempted")  # pragma: no cover

    # -- repository -------------------------------------------------------

    def repo_exists(self) -> bool:
        response = self.request("GET", f"/repos/{self.repo}", allow=(404,))
        return response.status_code != 404

    def create_repo(self, *, private: bool) -> None:
        user = self.request("GET", "/user").json()
        payload = {"name": self.repo_name, "private": private, "auto_init": False}
        if str(user.get("login", "")).lower() == self.owner.lower():
            self.request("POST", "/user/repos", json=payload)
        else:
            self.request("POST", f"/orgs/{self.owner}/repos", json=payload)

    # -- refs, blobs, trees, commits ---------------------------------------

    def get_branch_sha(self, branch: str) -> str | None:
        """Return the branch head, or None when the branch (or any history) is missing."""

        response = self.request("GET", f"/repos/{self.repo}/git/ref/heads/{branch}", allow=(404, 409))
        if response.status_code in (404, 409):
            return None
        return response.json()["object"]["sha"]

    def is_empty(self) -> bool:
        response = self.request("GET", f"/repos/{self.repo}/git/refs", allow=(404, 409))
        if response.status_code == 409:
            return True
        if response.status_code == 404:
            return True
        refs = response.json()
        return not refs

    def bootstrap(self, branch: str, message: str) -> str:
        """Create the first commit of an empty repository via the contents API."""

        self.request(
            "PUT",
            f"/repos/{self.repo}/contents/{BOOTSTRAP_FILE}",
            json={"message": message, "content": "", "branch": branch},
        )
        sha = self.get_branch_sha(branch)
        if sha is None:
            raise GitHubAPIError(f"Branch {branch} missing after bootstrapping {self.repo}")
        return sha

    def commit_tree_sha(self, commit_sha: str) -> str:
        return self.request("GET", f"/repos/{self.repo}/git/commits/{commit_sha}").json()["tree"]["sha"]

    def create_blob(self, content: bytes) -> str:
        payload = {"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"}
        return self.request("POST", f"/repos/{self.repo}/git/blobs", json=payload).json()["sha"]

    def create_tree(self, base_tree: str, entries: list[dict[str, str]]) -> str:
        payload = {"base_tree": base_tree, "tree": entries}
        return self.request("POST", f"/repos/{self.repo}/git/trees", json=payload).json()["sha"]

    def create_commit(self, message: str, tree_sha: str, parent_sha: str) -> str:
        payload = {"message": message, "tree": tree_sha, "parents": [parent_sha]}
        return self.request("POST", f"/repos/{self.repo}/git/commits", json=payload).json()["sha"]

    def update_branch(self, branch: str, sha: str, *, create: bool) -> None:
        if create:
            self.request(
                "POST",
                f"/repos/{self.repo}/git/refs",
                json={"ref": f"refs/heads/{branch}", "sha": sha},
            )
        else:
            self.request(
                "PATCH",
                f"/repos/{self.repo}/git/refs/heads/{branch}",
                json={"sha": sha, "force": False},
            )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text[:200]


@dataclass(slots=True)
class GitHubPublisher:
    """Push the workspace in fixed-size batches, one commit per batch.

    A failing batch leaves earlier batches committed on the remote branch.
    """

    settings: GitHubSinkSettings
    credentials: CredentialStore
    logger: logging.Logger
    transport: httpx.BaseTransport | None = None
    name: str = "github"

    def _client(self) -> GitHubClient:
        token = self.credentials.github_token()
        if not token:
            raise PublishError("GitHub token is not configured.")
        return GitHubClient(
            repo=self.settings.repo,
            token=token,
            api_url=self.settings.api_url,
            timeout=self.settings.timeout_seconds,
            transport=self.transport,
        )

    def publish(self, source: Path, commit_message: str) -> str:
        paths = sorted(p.relative_to(source).as_posix() for p in source.rglob("*") if p.is_file())
        if not paths:
            raise PublishError("No files to push to GitHub.")

        client = self._client()
        try:
            return self._publish(client, source, paths, commit_message)
        finally:
            client.close()

    def _resolve_head(self, client: GitHubClient, commit_message: str) -> tuple[str, bool]:
        """Return the parent commit for the first batch and whether the branch must be created."""

        branch = self.settings.branch
        head = client.get_branch_sha(branch)
        if head is not None:
            return head, False
        if self.settings.base_branch:
            base = client.get_branch_sha(self.settings.base_branch)
            if base is not None:
                return base, True
        if client.is_empty():
            self.logger.info("Bootstrapping empty repository %s", client.repo)
            return client.bootstrap(branch, commit_message), False
        default = client.request("GET", f"/repos/{client.repo}").json().get("default_branch")
        base = client.get_branch_sha(default) if default else None
        if base is None:
            raise GitHubAPIError(f"Cannot find a base commit for branch {branch}")
        return base, True

    def _publish(
        self, client: GitHubClient, source: Path, paths: list[str], commit_message: str
    ) -> str:
        if not client.repo_exists():
            self.logger.info("Creating GitHub repository %s", client.repo)
            client.create_repo(private=self.settings.private)

        parent, create_branch = self._resolve_head(client, commit_message)
        batches = plan_batches(paths, self.settings.batch_size)
        self.logger.info("Pushing %s files to %s in %s batch(es)", len(paths), client.repo, len(batches))

        for index, batch in enumerate(batches, start=1):
            entries = []
            for relative in batch:
                try:
                    content = (source / relative).read_bytes()
                except OSError as exc:
                    raise PublishError(f"Failed to read {relative}: {exc}") from exc
                entries.append(
                    {"path": relative, "mode": "100644", "type": "blob", "sha": client.create_blob(content)}
                )
            tree = client.create_tree(client.commit_tree_sha(parent), entries)
            parent = client.create_commit(commit_message, tree, parent)
            client.update_branch(self.settings.branch, parent, create=create_branch)
            create_branch = False
            self.logger.info("Pushed batch %s/%s (%s files)", index, len(batches), len(batch))

        return f"Pushed {len(paths)} files to {client.repo}@{self.settings.branch} in {len(batches)} commit(s)"
