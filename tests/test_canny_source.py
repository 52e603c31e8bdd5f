#!/usr/bin/env python3
"""Tests for the Canny import source."""

import pytest
import requests

from utils.canny_source import CannyImportOptions, CannySource, convert_canny_entries
from utils.errors import ProviderError


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.forms = []
        self.headers = {}

    def post(self, url, data=None, timeout=None):
        self.forms.append(dict(data or {}))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def canny_entry(i, status="published", **extra):
    entry = {
        "id": f"e{i}",
        "title": f"Entry {i}",
        "markdownDetails": f"Details {i}",
        "status": status,
        "publishedAt": "2024-04-01T00:00:00.000Z",
        "types": ["new"],
        "labels": [{"name": "Mobile"}],
        "url": f"https://acme.canny.io/changelog/e{i}",
    }
    entry.update(extra)
    return entry


def source(responses):
    return CannySource(api_key="key", session=FakeSession(responses))


def test_missing_api_key(monkeypatch):
    from configs.config import Config
    monkeypatch.setattr(Config, "CANNY_API_KEY", "")
    with pytest.raises(ProviderError) as exc:
        CannySource(session=FakeSession([]))
    assert exc.value.code == "UNAUTHORIZED"


def test_pages_until_has_more_is_false():
    src = source([
        FakeResponse(200, {"entries": [canny_entry(i) for i in range(50)], "hasMore": True}),
        FakeResponse(200, {"entries": [canny_entry(50), canny_entry(51, status="draft")], "hasMore": False}),
    ])
    entries = src.fetch_entries()
    assert len(entries) == 51
    assert [f["skip"] for f in src.session.forms] == [0, 50]
    assert src.session.forms[0]["apiKey"] == "key"


def test_max_entries_caps_result():
    src = source([FakeResponse(200, {"entries": [canny_entry(i) for i in range(10)], "hasMore": True})])
    assert len(src.fetch_entries(CannyImportOptions(max_entries=3))) == 3


def test_auth_failure_and_validate_key():
    with pytest.raises(ProviderError) as exc:
        source([FakeResponse(401, {})]).fetch_entries()
    assert exc.value.code == "UNAUTHORIZED"
    assert source([FakeResponse(403, {})]).validate_api_key() is False
    assert source([FakeResponse(200, {"entries": []})]).validate_api_key() is True


def test_network_failure():
    with pytest.raises(ProviderError) as exc:
        source([requests.ConnectionError("down")]).fetch_entries()
    assert exc.value.code == "NETWORK"


def test_conversion_shapes_entries():
    posts = [{"title": "Offline mode", "url": "https://acme.canny.io/p/1", "status": "complete", "tags": [{"name": "Sync"}]}]
    raw = [
        canny_entry(1, posts=posts, reactions={"like": 4}),
        canny_entry(2, markdownDetails="", plaintextDetails=""),
    ]
    outcome = convert_canny_entries(raw, CannyImportOptions(include_post_tags=True))
    first, second = outcome.entries
    assert first.title == "Entry 1"
    assert "**Related Feature Requests:**" in first.content
    assert "- [Offline mode](https://acme.canny.io/p/1) - complete" in first.content
    assert first.tags == ["new", "mobile", "sync"]
    assert first.metadata["likes"] == 4
    assert first.metadata["source"] == "canny"
    assert first.published_at is not None
    assert second.content == "No content provided."
    assert outcome.preview.valid_entries == 2
    assert outcome.detected_format.format == "custom"
