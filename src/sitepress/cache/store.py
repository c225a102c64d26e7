"""Dependency-aware render cache."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sitepress.content import ContentGraph

CONTENT_SUFFIX = ".html"
META_SUFFIX = ".meta"
EPOCH_FILENAME = "epoch.json"
DEFAULT_MAX_DEPENDENCIES = 100


@dataclass(slots=True)
class CacheRecord:
    """Metadata stored next to each cached payload."""

    url: str
    post_id: int | None
    dependent_posts: list[int]
    dependent_posts_urls: dict[int, str]
    timestamp: float
    content_type: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "url": self.url,
                "post_id": self.post_id,
                "dependent_posts": self.dependent_posts,
                "dependent_posts_urls": {str(k): v for k, v in self.dependent_posts_urls.items()},
                "timestamp": self.timestamp,
                "content_type": self.content_type,
            }
        )

    @classmethod
    def from_json(cls, text: str) -> CacheRecord:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("cache metadata must be an object")
        post_id = data.get("post_id")
        return cls(
            url=str(data["url"]),
            post_id=int(post_id) if post_id is not None else None,
            dependent_posts=[int(item) for item in data.get("dependent_posts") or []],
            dependent_posts_urls={
                int(k): str(v) for k, v in (data.get("dependent_posts_urls") or {}).items()
            },
            timestamp=float(data["timestamp"]),
            content_type=data.get("content_type") or None,
        )


@dataclass(slots=True)
class CacheStats:
    count: int
    total_bytes: int


@dataclass(slots=True)
class CacheStore:
    """File-backed cache keyed by a hash of the URL.

    A record is trusted only when it is newer than the global epoch and every entity it
    depended on is still published, unmodified, and at the permalink it had at write time.
    """

    directory: Path
    graph: ContentGraph
    logger: logging.Logger
    max_dependencies: int = DEFAULT_MAX_DEPENDENCIES
    clock: Any = time.time
    _pending: list[int] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)

    @staticmethod
    def cache_key(url: str) -> str:
        return hashlib.md5(url.encode("utf-8")).hexdigest()

    def _content_path(self, key: str) -> Path:
        return self.directory / f"{key}{CONTENT_SUFFIX}"

    def _meta_path(self, key: str) -> Path:
        return self.directory / f"{key}{META_SUFFIX}"

    # -- epoch ------------------------------------------------------------

    def current_epoch(self) -> float:
        path = self.directory / EPOCH_FILENAME
        try:
            return float(json.loads(path.read_text(encoding="utf-8"))["epoch"])
        except FileNotFoundError:
            return 0.0
        except (OSError, ValueError, KeyError, TypeError) as exc:
            self.logger.warning("Unreadable cache epoch %s: %s", path, exc)
            return 0.0

    def advance_epoch(self, timestamp: float | None = None) -> float:
        """Record a content mutation; older records become invalid."""

        epoch = self.clock() if timestamp is None else timestamp
        path = self.directory / EPOCH_FILENAME
        path.write_text(json.dumps({"epoch": epoch}), encoding="utf-8")
        return epoch

    # -- dependency accumulation ------------------------------------------

    def add_dependency(self, entity_id: int) -> None:
        """Note that the page currently being rendered read `entity_id`."""

        self._pending.append(int(entity_id))

    def pending_dependencies(self) -> list[int]:
        """Return the accumulated dependencies, deduplicated and capped."""

        seen: dict[int, None] = {}
        for entity_id in self._pending:
            seen.setdefault(entity_id, None)
        return list(seen)[: self.max_dependencies]

    def reset_dependencies(self) -> None:
        self._pending.clear()

    # -- records ----------------------------------------------------------

    def _read_record(self, url: str) -> CacheRecord | None:
        key = self.cache_key(url)
        content_path = self._content_path(key)
        meta_path = self._meta_path(key)
        if not content_path.exists() or not meta_path.exists():
            return None
        try:
            record = CacheRecord.from_json(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            self.logger.debug("Ignoring unreadable cache metadata %s: %s", meta_path, exc)
            return None
        return record

    def is_valid(self, url: str, primary_entity_id: int | None = None) -> bool:
        record = self._read_record(url)
        if record is None:
            return False

        if record.timestamp < self.current_epoch():
            return False

        for entity_id in record.dependent_posts:
            entity = self.graph.get_entity(entity_id)
            if entity is None or not entity.published:
                return False
            if entity.modified > record.timestamp:
                return False
            recorded = record.dependent_posts_urls.get(entity_id)
            if recorded is not None and recorded != entity.permalink:
                return False

        if primary_entity_id:
            entity = self.graph.get_entity(primary_entity_id)
            if entity is None or entity.modified > record.timestamp:
                return False

        return True

    def get(self, url: str) -> bytes | None:
        path = self._content_path(self.cache_key(url))
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def content_type(self, url: str) -> str | None:
        """Content-Type the cached payload was served with, if it was recorded."""

        record = self._read_record(url)
        return record.content_type if record is not None else None

    def put(
        self,
        url: str,
        content: bytes,
        primary_entity_id: int | None = None,
        content_type: str | None = None,
    ) -> bool:
        """Persist `content` with a record built from the pending dependency set.

        The pending dependency set is cleared whether or not the write succeeds.
        """

        dependencies = self.pending_dependencies()
        snapshot: dict[int, str] = {}
        for entity_id in dependencies:
            entity = self.graph.get_entity(entity_id)
            if entity is not None:
                snapshot[entity_id] = entity.permalink
        record = CacheRecord(
            url=url,
            post_id=primary_entity_id or None,
            dependent_posts=dependencies,
            dependent_posts_urls=snapshot,
            timestamp=self.clock(),
            content_type=content_type,
        )
        key = self.cache_key(url)
        try:
            self._content_path(key).write_bytes(content)
            self._meta_path(key).write_text(record.to_json(), encoding="utf-8")
        except OSError as exc:
            self.logger.warning("Failed to write cache entry for %s: %s", url, exc)
            return False
        finally:
            self.reset_dependencies()
        return True

    def delete(self, url: str) -> bool:
        return self._delete_key(self.cache_key(url))

    def _delete_key(self, key: str) -> bool:
        removed = False
        for path in (self._content_path(key), self._meta_path(key)):
            try:
                path.unlink()
                removed = True
            except FileNotFoundError:
                continue
        return removed

    def clear_by_entity(self, entity_id: int) -> int:
        """Delete records rendered from or depending on `entity_id`."""

        deleted = 0
        for meta_path in sorted(self.directory.glob(f"*{META_SUFFIX}")):
            try:
                record = CacheRecord.from_json(meta_path.read_text(encoding="utf-8"))
            except (OSError, ValueError, KeyError, TypeError):
                continue
            if record.post_id == entity_id or entity_id in record.dependent_posts:
                if self._delete_key(meta_path.name[: -len(META_SUFFIX)]):
                    deleted += 1
        return deleted

    def clear_all(self) -> int:
        """Delete every cached payload and record; returns the number of files removed."""

        deleted = 0
        for path in self.directory.iterdir():
            if path.is_file() and path.suffix in (CONTENT_SUFFIX, META_SUFFIX):
                try:
                    path.unlink()
                except OSError as exc:
                    self.logger.warning("Failed to delete cache file %s: %s", path, exc)
                    continue
                deleted += 1
        return deleted

    def stats(self) -> CacheStats:
        files = list(self.directory.glob(f"*{CONTENT_SUFFIX}"))
        return CacheStats(count=len(files), total_bytes=sum(os.path.getsize(f) for f in files))
