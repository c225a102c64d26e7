"""Tests for the content graph index."""

from __future__ import annotations

import json

import pytest

from sitepress.content import ContentEntity, ContentIndex, normalize_permalink


def test_normalize_permalink_ignores_slash_query_and_scheme():
    assert normalize_permalink("https://Example.com/about/?x=1#top") == "example.com/about"
    assert normalize_permalink("http://example.com/about") == "example.com/about"
    assert normalize_permalink("https://example.com/") == "example.com"


def test_entity_lookup_by_url():
    index = ContentIndex([ContentEntity(7, "https://example.com/hello/", modified=10.0)])

    assert index.entity_id_for_url("https://example.com/hello") == 7
    assert index.entity_id_for_url("https://example.com/hello/?utm=1") == 7
    assert index.entity_id_for_url("https://example.com/other/") is None
    assert index.get_entity(7).modified == 10.0


def test_upsert_reindexes_renamed_permalink():
    index = ContentIndex([ContentEntity(7, "https://example.com/old/", modified=1.0)])

    index.upsert(ContentEntity(7, "https://example.com/new/", modified=1.0))

    assert index.entity_id_for_url("https://example.com/old/") is None
    assert index.entity_id_for_url("https://example.com/new/") == 7
    assert len(index) == 1

    index.remove(7)
    assert index.get_entity(7) is None
    assert len(index) == 0


def test_from_yaml_manifest(tmp_path):
    manifest = tmp_path / "content.yaml"
    manifest.write_text(
        "entities:\n"
        "  - id: 1\n"
        "    permalink: https://example.com/\n"
        "    modified: 100\n"
        "  - id: 2\n"
        "    permalink: https://example.com/draft/\n"
        "    modified: '2024-01-02T03:04:05+00:00'\n"
        "    status: draft\n",
        encoding="utf-8",
    )

    index = ContentIndex.from_file(manifest)

    assert index.get_entity(1).published is True
    assert index.get_entity(1).modified == 100.0
    draft = index.get_entity(2)
    assert draft.published is False
    assert draft.modified == 1704164645.0


def test_from_json_manifest(tmp_path):
    manifest = tmp_path / "content.json"
    manifest.write_text(
        json.dumps({"entities": [{"id": "3", "permalink": "https://example.com/a/", "status": "publish"}]}),
        encoding="utf-8",
    )

    index = ContentIndex.from_file(manifest)

    assert index.entity_id_for_url("https://example.com/a") == 3
    assert index.get_entity(3).modified == 0.0


def test_manifest_requires_id_and_permalink(tmp_path):
    manifest = tmp_path / "content.yaml"
    manifest.write_text("entities:\n  - permalink: https://example.com/\n", encoding="utf-8")

    with pytest.raises(ValueError, match="id"):
        ContentIndex.from_file(manifest)
