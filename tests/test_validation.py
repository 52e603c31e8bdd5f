#!/usr/bin/env python3
"""Tests for entry validation, previews and option checks."""

from utils.changelog_models import ImportOptions, ImportStrategy, ValidatedEntry
from utils.markdown_import import entries_from_items
from utils.validation import (
    MAX_CONTENT_LENGTH,
    MAX_TITLE_LENGTH,
    build_preview,
    check_conflicts,
    normalize_tag,
    validate_entries,
    validate_entry,
    validate_import_options,
)


def test_valid_entry_passes_unchanged():
    entry = validate_entry(ValidatedEntry(title="Release", content="- a", version="1.0.0", tags=["UI", "ui", " api "]), 0)
    assert entry.is_valid
    assert entry.validation_errors == []
    assert entry.warnings == []
    assert entry.tags == ["ui", "api"]
    assert entry.metadata["original_index"] == 0


def test_long_title_is_a_warning_with_fix():
    entry = validate_entry(ValidatedEntry(title="x" * (MAX_TITLE_LENGTH + 5), content="c"), 3)
    assert entry.is_valid
    assert len(entry.suggested_fixes["title"]) == MAX_TITLE_LENGTH


def test_long_content_is_an_error():
    entry = validate_entry(ValidatedEntry(title="t", content="y" * (MAX_CONTENT_LENGTH + 1)), 0)
    assert not entry.is_valid
    assert entry.metadata["issue_codes"] == ["content_too_long"]


def test_loose_version_gets_suggestion():
    entry = validate_entry(ValidatedEntry(title="t", content="c", version="Version 2.1"), 0)
    assert entry.is_valid
    assert entry.suggested_fixes["version"] == "2.1.0"
    preview = build_preview([entry])
    assert preview.suggested_version_mappings == {"Version 2.1": "2.1.0"}


def test_preview_counts():
    entries, preview = validate_entries([
        ValidatedEntry(title="a", content="c", version="1.0.0"),
        ValidatedEntry(title="", content="c", version="1.0.0"),
        ValidatedEntry(title="b", content=""),
    ])
    assert preview.total_entries == 3
    assert preview.valid_entries == 2
    assert preview.invalid_entries == 1
    assert preview.missing_titles == 1
    assert preview.missing_content == 1
    assert preview.duplicate_versions == ["1.0.0"]
    assert entries[1].title == "Untitled entry 2"
    assert any(e.startswith("b: ") for e in preview.errors)


def test_duplicate_versions_match_collision_key():
    entries, preview = validate_entries([
        ValidatedEntry(title="a", content="c", version="v1.0.0"),
        ValidatedEntry(title="b", content="c", version="1.0.0"),
        ValidatedEntry(title="c", content="c", version="V1.0.0 "),
        ValidatedEntry(title="d", content="c", version="2.0.0"),
    ])
    assert preview.duplicate_versions == ["v1.0.0"]
    assert "Version v1.0.0 appears 3 times in this import" in preview.warnings


def test_structured_items_report_prefixed_duplicates():
    outcome = entries_from_items([
        {"title": "a", "content": "x", "version": "v2.1.0"},
        {"title": "b", "content": "y", "version": "2.1.0"},
    ])
    assert outcome.preview.duplicate_versions == ["v2.1.0"]
    assert len(outcome.entries) == 2


def test_normalize_tag():
    assert normalize_tag("Bugfix") == "fix"
    assert normalize_tag("custom") == "custom"


def test_option_warnings():
    assert validate_import_options(ImportOptions()) == []
    replace = validate_import_options(ImportOptions(strategy=ImportStrategy.REPLACE, preserve_existing_entries=False))
    assert "delete all existing entries" in replace[0]
    degraded = validate_import_options(ImportOptions(strategy=ImportStrategy.REPLACE))
    assert "behaves like append" in degraded[0]


def test_check_conflicts():
    entries = [ValidatedEntry(title="a", content="c", version="1.0.0"), ValidatedEntry(title="b", content="c", version="2.0.0")]
    assert check_conflicts(entries, ["v2.0.0", None]) == ["2.0.0"]
    invalid = [ValidatedEntry(title="c", content="", version="1.0.0", is_valid=False)]
    assert check_conflicts(invalid, ["1.0.0"]) == []
