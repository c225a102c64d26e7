"""Content graph interface consumed by the cache and dependency tracking."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import urlparse

import yaml


@dataclass(frozen=True, slots=True)
class ContentEntity:
    """A content object (post, page, term) whose state can affect rendered pages."""

    id: int
    permalink: str
    modified: float
    published: bool = True


class ContentGraph(Protocol):
    """Read-only view of the CMS object graph."""

    def get_entity(self, entity_id: int) -> ContentEntity | None:
        """Return the entity, or None when it no longer exists."""

    def entity_id_for_url(self, url: str) -> int | None:
        """Resolve a URL to the entity it renders, if any."""


def normalize_permalink(url: str) -> str:
    """Reduce a URL to `host/path` with no trailing slash, query or fragment."""

    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/")
    return f"{parsed.netloc.lower()}{path}"


class ContentIndex:
    """In-memory content graph, optionally loaded from a YAML/JSON manifest."""

    def __init__(self, entities: Iterable[ContentEntity] = ()) -> None:
        self._entities: dict[int, ContentEntity] = {}
        self._by_permalink: dict[str, int] = {}
        for entity in entities:
            self.upsert(entity)

    def __len__(self) -> int:
        return len(self._entities)

    def upsert(self, entity: ContentEntity) -> None:
        """Insert or replace an entity, re-indexing its permalink."""

        previous = self._entities.get(entity.id)
        if previous is not None:
            self._by_permalink.pop(normalize_permalink(previous.permalink), None)
        self._entities[entity.id] = entity
        self._by_permalink[normalize_permalink(entity.permalink)] = entity.id

    def remove(self, entity_id: int) -> None:
        entity = self._entities.pop(entity_id, None)
        if entity is not None:
            self._by_permalink.pop(normalize_permalink(entity.permalink), None)

    def get_entity(self, entity_id: int) -> ContentEntity | None:
        return self._entities.get(entity_id)

    def entity_id_for_url(self, url: str) -> int | None:
        return self._by_permalink.get(normalize_permalink(url))

    @classmethod
    def from_file(cls, path: Path) -> ContentIndex:
        """Load entities from a manifest with an `entities` list."""

        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"Content manifest {path} must define a mapping at the top level.")
        raw_entities = data.get("entities") or []
        if not isinstance(raw_entities, list):
            raise ValueError(f"Content manifest {path}: 'entities' must be a list.")
        return cls(_parse_entity(item, path) for item in raw_entities)


def _parse_entity(item: Any, source: Path) -> ContentEntity:
    if not isinstance(item, dict):
        raise ValueError(f"Content manifest {source}: each entity must be a mapping.")
    try:
        entity_id = int(item["id"])
        permalink = str(item["permalink"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Content manifest {source}: entity needs 'id' and 'permalink'.") from exc
    return ContentEntity(
        id=entity_id,
        permalink=permalink,
        modified=_parse_timestamp(item.get("modified", 0)),
        published=str(item.get("status", "publish")).lower() in {"publish", "published"},
    )


def _parse_timestamp(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str) and value.strip():
        return datetime.fromisoformat(value.strip()).timestamp()
    return 0.0
