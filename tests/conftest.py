import pytest

from configs.config import Config


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Keep metrics, audit logs, breaker state and entry files inside tmp_path."""
    monkeypatch.setattr(Config, "METRICS_ROOT", str(tmp_path / "metrics"))
    monkeypatch.setattr(Config, "AUDIT_ROOT", str(tmp_path / "audit"))
    monkeypatch.setattr(Config, "CB_ROOT", str(tmp_path / "cb"))
    monkeypatch.setattr(Config, "ENTRY_STORE_PATH", str(tmp_path / "entries.json"))
    monkeypatch.setattr(Config, "INCLUDE_UNKNOWN_TYPES", False)
    return tmp_path
