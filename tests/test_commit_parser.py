#!/usr/bin/env python3
"""Tests for conventional commit parsing."""

import pytest

from utils.commit_parser import EMPTY_MESSAGE_DESCRIPTION, OTHER_TYPE, has_breaking_footer, parse


def test_type_scope_and_description():
    parsed = parse("feat(auth): add OAuth login")
    assert parsed.type == "feat"
    assert parsed.scope == "auth"
    assert parsed.description == "add OAuth login"
    assert parsed.is_breaking is False
    assert parsed.body is None


def test_bang_marks_breaking():
    parsed = parse("refactor(api)!: drop v1 endpoints")
    assert parsed.type == "refactor"
    assert parsed.is_breaking is True


def test_breaking_footer_in_body():
    parsed = parse("fix: handle nulls\n\nBREAKING CHANGE: config key renamed")
    assert parsed.is_breaking is True
    assert parsed.body == "BREAKING CHANGE: config key renamed"


def test_breaking_footer_with_hyphen():
    assert has_breaking_footer("details\nBREAKING-CHANGE: removed flag")
    assert not has_breaking_footer("mentions breaking change: lowercase only")
    assert not has_breaking_footer(None)


def test_type_is_lowercased():
    assert parse("FEAT: shout").type == "feat"


def test_unstructured_subject_falls_back_to_other():
    parsed = parse("Update README with install steps")
    assert parsed.type == OTHER_TYPE
    assert parsed.scope is None
    assert parsed.description == "Update README with install steps"
    assert parsed.is_breaking is False


def test_unstructured_subject_ignores_breaking_footer():
    parsed = parse("Big rewrite\n\nBREAKING CHANGE: everything")
    assert parsed.type == OTHER_TYPE
    assert parsed.is_breaking is False


def test_empty_description_after_colon_is_other():
    parsed = parse("feat:   ")
    assert parsed.type == OTHER_TYPE
    assert parsed.description == "feat:"


@pytest.mark.parametrize("message", ["", "   \n\n", None])
def test_empty_messages_never_raise(message):
    parsed = parse(message)
    assert parsed.type == OTHER_TYPE
    assert parsed.description == EMPTY_MESSAGE_DESCRIPTION


def test_leading_blank_lines_promote_first_line():
    parsed = parse("\n\nfix(db): close cursor\nmore context")
    assert parsed.type == "fix"
    assert parsed.scope == "db"
    assert parsed.body == "more context"


def test_only_subject_line_is_matched():
    parsed = parse("Merge branch 'main'\n\nfeat: hidden in body")
    assert parsed.type == OTHER_TYPE
    assert parsed.description == "Merge branch 'main'"


def test_empty_scope_is_none():
    parsed = parse("docs(): tidy")
    assert parsed.scope is None
    assert parsed.description == "tidy"
