import pytest

from revente.infra.db_interface import DB, SlotStorage
from revente.utils.config import load_config
from revente.utils.exceptions import QuotaExceeded, StorageError


def test_slots_round_trip_json(tmp_path):
    storage = SlotStorage(DB(str(tmp_path / "slots.db")))
    storage.set("sku_prefix", "VT")
    storage.set("user_prefs_a_b", {"monthlyGoal": 300, "nested": [1, "é"]})
    again = SlotStorage(DB(str(tmp_path / "slots.db")))
    assert again.get("sku_prefix") == "VT"
    assert again.get("user_prefs_a_b") == {"monthlyGoal": 300, "nested": [1, "é"]}
    assert again.get("absent", []) == []


def test_keys_prefix_is_literal(storage):
    storage.set("user_prefs_1", {})
    storage.set("userXprefs", {})
    assert storage.keys("user_") == ["user_prefs_1"]
    storage.remove("user_prefs_1")
    assert storage.keys("user_") == []


def test_quota_and_serialization_errors():
    storage = SlotStorage(DB(":memory:"), quota_bytes=32)
    with pytest.raises(QuotaExceeded):
        storage.set("big", "x" * 100)
    with pytest.raises(StorageError):
        storage.set("bad", {"obj": object()})
    assert storage.get("big") is None


def test_load_config_defaults_and_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("REVENTE_CONFIG", raising=False)
    cfg = load_config()
    assert cfg.app_name == "Revente"
    assert not cfg.remote_enabled
    assert cfg.security["min_password_length"] == 6

    path = tmp_path / "alt.yaml"
    path.write_text(
        "app_name: Boutique\n"
        "remote:\n"
        "  api_key: abc\n"
        "  database_url: https://db.example\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("REVENTE_CONFIG", str(path))
    cfg = load_config()
    assert cfg.app_name == "Boutique"
    assert cfg.remote_enabled
    assert cfg.remote["timeout"] == 10


def test_context_selects_backend(ctx, remote_ctx, backend):
    assert ctx.mode == "local"
    assert remote_ctx.mode == "remote"
    assert backend.token_provider == remote_ctx.auth.id_token
