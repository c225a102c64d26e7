"""Configuration loading for Sitepress."""

from __future__ import annotations

import re
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")

BRANCH_PATTERN = re.compile(r"^[a-zA-Z0-9/_-]+$")
REPO_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,100}/[a-zA-Z0-9_.-]{1,100}$")
EXCLUDE_PATTERN = re.compile(r"^[a-zA-Z0-9_\-.*/]+$")
UNSAFE_INCLUDE_CHARS = re.compile(r'[<>"|?*]')
DANGEROUS_PREFIXES = ("/etc", "/System", "/bin", "/sbin", "/usr/bin", "/usr/sbin")
SINK_ORDER = ("local", "github", "git_local", "archive")


def _check_output_path(value: Path | None, label: str) -> Path | None:
    if value is None:
        return None
    text = str(value)
    if not value.is_absolute():
        raise ValueError(f"{label} must be an absolute path.")
    if ".." in text:
        raise ValueError(f"{label} must not contain '..'.")
    for prefix in DANGEROUS_PREFIXES:
        if text == prefix or text.startswith(prefix + "/"):
            raise ValueError(f"{label} points at a protected system directory: {text}")
    return value


def _check_branch(value: str, label: str) -> str:
    if not BRANCH_PATTERN.match(value):
        raise ValueError(f"{label} contains unsupported characters: {value!r}")
    return value


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    path: Path | None = None
    level: str = Field(default="info")

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("Logging level must be a string.")
        normalized = value.strip().lower()
        if normalized not in {"debug", "info", "warn", "warning", "error", "critical"}:
            raise ValueError(f"Unsupported logging level: {value!r}")
        return normalized


class ContentDir(BaseModel):
    """A site-wide asset directory mirrored into the workspace."""

    model_config = ConfigDict(extra="forbid")

    path: Path
    target: str

    @field_validator("target")
    @classmethod
    def _normalize_target(cls, value: str) -> str:
        cleaned = value.strip().strip("/")
        if not cleaned or ".." in cleaned.split("/"):
            raise ValueError(f"Invalid content directory target: {value!r}")
        return cleaned


class SiteSettings(BaseModel):
    """Origin and transform settings for the site being snapshotted."""

    model_config = ConfigDict(extra="forbid")

    site_url: str = ""
    home_url: str | None = None
    url_mode: Literal["relative", "absolute"] = "relative"
    site_root: Path | None = None
    content_dirs: list[ContentDir] = Field(default_factory=list)
    include_paths: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(default_factory=list)
    enable_tag_archive: bool = False
    enable_date_archive: bool = False
    enable_author_archive: bool = False
    enable_robots_txt: bool = False

    @field_validator("site_url", "home_url")
    @classmethod
    def _normalize_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if value and not value.startswith(("http://", "https://")):
            raise ValueError(f"Site URLs must use http or https: {value!r}")
        return value

    @field_validator("include_paths", "exclude_patterns", mode="before")
    @classmethod
    def _split_lines(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.splitlines()
        if not isinstance(value, list):
            raise TypeError("Path lists must be a list or newline-separated string.")
        return [str(item).strip() for item in value if str(item).strip()]

    @field_validator("include_paths")
    @classmethod
    def _validate_include_paths(cls, value: list[str]) -> list[str]:
        for path in value:
            if ".." in path:
                raise ValueError("Include paths must not contain '..'.")
            if UNSAFE_INCLUDE_CHARS.search(path):
                raise ValueError(f"Include path contains unsupported characters: {path!r}")
        return value

    @field_validator("exclude_patterns")
    @classmethod
    def _validate_exclude_patterns(cls, value: list[str]) -> list[str]:
        for pattern in value:
            if ".." in pattern:
                raise ValueError("Exclude patterns must not contain '..'.")
            if not EXCLUDE_PATTERN.match(pattern):
                raise ValueError(f"Exclude pattern contains unsupported characters: {pattern!r}")
        return value

    @property
    def effective_home_url(self) -> str:
        return self.home_url or self.site_url


class CrawlerSettings(BaseModel):
    """Fetch strategy and HTTP defaults."""

    model_config = ConfigDict(extra="forbid")

    mode: Literal["sequential", "concurrent"] = "concurrent"
    timeout_seconds: float = Field(default=600.0, ge=60.0, le=18000.0)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    concurrency: int = Field(default=5, ge=1)
    batch_size: int = Field(default=10, ge=1)
    user_agent: str | None = None
    max_retries: int = Field(default=1, ge=1)
    backoff_min_seconds: float = Field(default=0.5, ge=0.0)
    backoff_max_seconds: float = Field(default=10.0, ge=0.0)
    basic_auth_user: str | None = None


class CacheSettings(BaseModel):
    """Render cache configuration."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    path: Path = Path("data/cache")
    max_dependencies: int = Field(default=100, ge=1)


class StateSettings(BaseModel):
    """Run state (lease, progress, log) storage."""

    model_config = ConfigDict(extra="forbid")

    path: Path = Path("data/sitepress.sqlite")
    lease_seconds: int = Field(default=3600, ge=1)
    progress_ttl_seconds: int = Field(default=3600, ge=1)
    max_log_entries: int = Field(default=1000, ge=1)


class WorkspaceSettings(BaseModel):
    """Temporary workspace location."""

    model_config = ConfigDict(extra="forbid")

    root: Path | None = None
    prefix: str = "sitepress-"

    @property
    def effective_root(self) -> Path:
        return self.root or Path(tempfile.gettempdir())


class ContentSettings(BaseModel):
    """Content graph manifest."""

    model_config = ConfigDict(extra="forbid")

    manifest: Path | None = None


class LocalSinkSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    output_path: Path | None = None

    @field_validator("output_path")
    @classmethod
    def _validate_output(cls, value: Path | None) -> Path | None:
        return _check_output_path(value, "Local output path")

    @model_validator(mode="after")
    def _require_path(self) -> LocalSinkSettings:
        if self.enabled and self.output_path is None:
            raise ValueError("Local output requires 'output_path'.")
        return self


class GitLocalSinkSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    work_dir: Path | None = None
    branch: str = "main"
    push_remote: bool = False
    remote: str = "origin"

    @field_validator("work_dir")
    @classmethod
    def _validate_work_dir(cls, value: Path | None) -> Path | None:
        return _check_output_path(value, "Git work directory")

    @field_validator("branch")
    @classmethod
    def _validate_branch(cls, value: str) -> str:
        return _check_branch(value, "Git branch")

    @model_validator(mode="after")
    def _require_work_dir(self) -> GitLocalSinkSettings:
        if self.enabled and self.work_dir is None:
            raise ValueError("Local git output requires 'work_dir'.")
        return self


class GitHubSinkSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    repo: str = ""
    branch: str = "main"
    base_branch: str | None = None
    private: bool = True
    api_url: str = "https://api.github.com"
    batch_size: int = Field(default=300, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0.0)

    @field_validator("branch", "base_branch")
    @classmethod
    def _validate_branch(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _check_branch(value, "GitHub branch")

    @model_validator(mode="after")
    def _require_repo(self) -> GitHubSinkSettings:
        if not self.enabled:
            return self
        if not self.repo:
            raise ValueError("GitHub output requires 'repo'.")
        if len(self.repo) > 200 or not REPO_PATTERN.match(self.repo):
            raise ValueError(f"GitHub repo must look like 'owner/name': {self.repo!r}")
        return self


class ArchiveSinkSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    output_path: Path | None = None
    prefix: str = "static-output-"

    @field_validator("output_path")
    @classmethod
    def _validate_output(cls, value: Path | None) -> Path | None:
        return _check_output_path(value, "Archive output path")

    @model_validator(mode="after")
    def _require_path(self) -> ArchiveSinkSettings:
        if self.enabled and self.output_path is None:
            raise ValueError("Archive output requires 'output_path'.")
        return self


class SinkSettings(BaseModel):
    """Publish destinations."""

    model_config = ConfigDict(extra="forbid")

    commit_message: str = ""
    local: LocalSinkSettings = Field(default_factory=LocalSinkSettings)
    github: GitHubSinkSettings = Field(default_factory=GitHubSinkSettings)
    git_local: GitLocalSinkSettings = Field(default_factory=GitLocalSinkSettings)
    archive: ArchiveSinkSettings = Field(default_factory=ArchiveSinkSettings)

    def enabled_names(self) -> list[str]:
        """Return enabled sink names in publish order."""

        return [name for name in SINK_ORDER if getattr(self, name).enabled]


class ConfigModel(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    site: SiteSettings = Field(default_factory=SiteSettings)
    crawler: CrawlerSettings = Field(default_factory=CrawlerSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)
    content: ContentSettings = Field(default_factory=ContentSettings)
    sinks: SinkSettings = Field(default_factory=SinkSettings)


@dataclass(slots=True)
class Config:
    """Validated configuration with convenience helpers."""

    model: ConfigModel
    raw: Mapping[str, Any] = field(repr=False)
    loaded_from: tuple[str, ...] = field(default_factory=tuple, repr=False)

    @property
    def logging(self) -> LoggingSettings:
        """Return logging settings."""

        return self.model.logging

    @property
    def site(self) -> SiteSettings:
        return self.model.site

    @property
    def crawler(self) -> CrawlerSettings:
        return self.model.crawler

    @property
    def cache(self) -> CacheSettings:
        return self.model.cache

    @property
    def state(self) -> StateSettings:
        return self.model.state

    @property
    def workspace(self) -> WorkspaceSettings:
        return self.model.workspace

    @property
    def content(self) -> ContentSettings:
        return self.model.content

    @property
    def sinks(self) -> SinkSettings:
        return self.model.sinks

    def commit_message(self, now: datetime | None = None) -> str:
        """Return the configured commit message, or a generated `update:` stamp."""

        if self.sinks.commit_message.strip():
            return self.sinks.commit_message.strip()
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        return f"update:{stamp}"

    def validate_for_run(self) -> None:
        """Check the settings a run needs beyond per-field validation."""

        if not self.site.site_url:
            raise ValueError("Invalid configuration: site.site_url is required.")
        if not self.sinks.enabled_names():
            raise ValueError("Invalid configuration: enable at least one sink.")

    def model_dump(self) -> Mapping[str, Any]:
        """Expose the parsed configuration as a mapping."""

        return self.model.model_dump(mode="json")


def build_config(data: Mapping[str, Any]) -> Config:
    """Validate an in-memory mapping into a `Config`."""

    try:
        model = ConfigModel.model_validate(dict(data))
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
    return Config(model=model, raw=dict(data))


def load_config(path: Path | None = None) -> Config:
    """Load `path` on its own, or layer `config/local.yaml` over the default document.

    The default comes from `config/default.yaml` in the working directory when present,
    otherwise from the copy shipped inside the package.
    """

    if path is not None:
        explicit = _absolute(path)
        if not explicit.is_file():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        layers = [(str(explicit), _read_yaml(explicit.read_text(encoding="utf-8"), explicit))]
    else:
        layers = [_default_layer()]
        local = _absolute(LOCAL_CONFIG_PATH)
        if local.is_file():
            layers.append((str(local), _read_yaml(local.read_text(encoding="utf-8"), local)))

    merged: dict[str, Any] = {}
    for _, data in layers:
        merged = _merge_dicts(merged, data)

    config = build_config(merged)
    config.loaded_from = tuple(source for source, _ in layers)
    return config


def _absolute(path: Path) -> Path:
    path = Path(path).expanduser()
    return path if path.is_absolute() else Path.cwd() / path


def _default_layer() -> tuple[str, dict[str, Any]]:
    on_disk = _absolute(DEFAULT_CONFIG_PATH)
    if on_disk.is_file():
        return str(on_disk), _read_yaml(on_disk.read_text(encoding="utf-8"), on_disk)
    shipped = resources.files("sitepress.config").joinpath("default.yaml")
    return "sitepress.config:default.yaml", _read_yaml(shipped.read_text(encoding="utf-8"), shipped)


def _read_yaml(text: str, origin: object) -> dict[str, Any]:
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration {origin} must be a mapping at the top level.")
    return data


def _merge_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive merge; `override` wins on conflicting scalar keys."""

    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = result.get(key)
        result[key] = (
            _merge_dicts(current, value)
            if isinstance(current, dict) and isinstance(value, dict)
            else value
        )
    return result
