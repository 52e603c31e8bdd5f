#!/usr/bin/env python3
"""Tests for the in-memory and JSON file entry stores."""

import json

import pytest

from storage.entry_store import InMemoryEntryStore, JsonFileEntryStore
from utils.changelog_models import EntryDraft
from utils.errors import EntryNotFoundError, EntryStoreError, StoreUnavailableError


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryEntryStore()
    return JsonFileEntryStore(str(tmp_path / "store" / "entries.json"))


def test_create_list_update_delete(store):
    entry_id = store.create_entry("web", EntryDraft(title="One", content="c", version="1.0.0"))
    store.create_entry("api", EntryDraft(title="Other project", content="c"))
    assert [e.title for e in store.list_entries("web")] == ["One"]

    store.update_entry(entry_id, EntryDraft(title="One", content="new", version="1.0.0"))
    updated = store.get_entry(entry_id)
    assert updated.content == "new"
    assert updated.updated_at is not None
    assert updated.project_id == "web"

    store.delete_entry(entry_id)
    assert store.list_entries("web") == []
    with pytest.raises(EntryNotFoundError):
        store.delete_entry(entry_id)


def test_set_published(store):
    entry_id = store.create_entry("web", EntryDraft(title="Draft", content="c"))
    published = store.set_published(entry_id)
    assert published.published is True
    assert published.published_at is not None


def test_missing_entry(store):
    with pytest.raises(EntryNotFoundError):
        store.get_entry("nope")
    with pytest.raises(EntryNotFoundError):
        store.update_entry("nope", EntryDraft(title="t", content="c"))


def test_file_store_persists_across_instances(tmp_path):
    path = str(tmp_path / "entries.json")
    entry_id = JsonFileEntryStore(path).create_entry("web", EntryDraft(title="Kept", content="c"))
    assert JsonFileEntryStore(path).get_entry(entry_id).title == "Kept"
    with open(path, encoding="utf-8") as f:
        assert entry_id in json.load(f)["entries"]


def test_corrupt_file_is_unavailable(tmp_path):
    path = tmp_path / "entries.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreUnavailableError):
        JsonFileEntryStore(str(path)).list_entries("web")


def test_failed_replace_leaves_no_temp_file(tmp_path, monkeypatch):
    store = JsonFileEntryStore(str(tmp_path / "entries.json"))
    store.create_entry("web", EntryDraft(title="a", content="b"))

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("storage.entry_store.os.replace", broken_replace)
    with pytest.raises(EntryStoreError):
        store.create_entry("web", EntryDraft(title="c", content="d"))
    assert sorted(p.name for p in tmp_path.iterdir()) == ["entries.json"]
    assert [e.title for e in store.list_entries("web")] == ["a"]
