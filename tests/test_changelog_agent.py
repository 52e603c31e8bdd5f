#!/usr/bin/env python3
"""CLI tests for the changelog agent (offline commands only)."""

import json

import pytest

from agents.changelog_agent import main
from storage.entry_store import JsonFileEntryStore

CHANGELOG = "# Changelog\n\n## [1.1.0] - 2024-05-01\n- Export\n\n## [1.0.0] - 2024-03-01\n- First\n"


def run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


@pytest.fixture
def changelog_file(tmp_path):
    path = tmp_path / "CHANGELOG.md"
    path.write_text(CHANGELOG, encoding="utf-8")
    return str(path)


def test_preview_prints_entries(changelog_file, capsys):
    assert run(["preview", "--file", changelog_file]) == 0
    out = capsys.readouterr().out
    assert "Entries: 2 (2 valid, 0 invalid)" in out
    assert "Version 1.1.0 - 2024-05-01" in out


def test_import_then_reimport_skips(changelog_file, tmp_path, capsys):
    store_path = str(tmp_path / "entries.json")
    assert run(["import", "--project", "web", "--file", changelog_file, "--store", store_path, "--json"]) == 0
    first = json.loads(capsys.readouterr().out)
    assert first["imported_count"] == 2

    assert run(["import", "--project", "web", "--file", changelog_file, "--store", store_path, "--json"]) == 0
    second = json.loads(capsys.readouterr().out)
    assert (second["imported_count"], second["skipped_count"]) == (0, 2)
    assert len(JsonFileEntryStore(store_path).list_entries("web")) == 2


def test_dry_run_writes_nothing(changelog_file, tmp_path):
    store_path = str(tmp_path / "entries.json")
    assert run(["import", "--project", "web", "--file", changelog_file, "--store", store_path, "--dry-run"]) == 0
    assert JsonFileEntryStore(store_path).list_entries("web") == []


def test_publish_entry(changelog_file, tmp_path, capsys):
    store_path = str(tmp_path / "entries.json")
    run(["import", "--project", "web", "--file", changelog_file, "--store", store_path])
    entry_id = JsonFileEntryStore(store_path).list_entries("web")[0].id
    assert run(["publish-entry", "--entry-id", entry_id, "--store", store_path]) == 0
    assert JsonFileEntryStore(store_path).get_entry(entry_id).published is True


def test_missing_entry_exits_with_error(tmp_path, capsys):
    assert run(["publish-entry", "--entry-id", "nope", "--store", str(tmp_path / "e.json")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_missing_file_exits_with_error(tmp_path, capsys):
    assert run(["preview", "--file", str(tmp_path / "absent.md")]) == 1
