"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from hippo.ai.orchestration import LoopGuardConfig, OrchestratorConfig
from hippo.services.settings import SecretVault, Settings, SettingsStore, redact_secret


def _store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "key"))


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    assert _store(tmp_path).load() == Settings()


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    original = Settings(
        base_url="https://example.com/v1",
        api_key="super-secret",
        model="gpt-4.1-mini",
        organization="acme",
        request_timeout=30.0,
        max_round_trips=6,
        default_headers={"X-Test": "1"},
        metadata={"env": "dev"},
        chats_dir=str(tmp_path / "chats"),
    )

    SettingsStore(path).save(original)
    reloaded = SettingsStore(path).load()

    assert reloaded == original


def test_api_key_is_encrypted_on_disk(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(api_key="super-secret"))

    payload = json.loads(store.path.read_text(encoding="utf-8"))

    assert "api_key" not in payload
    assert payload["api_key_ciphertext"].startswith("fernet:")
    assert "super-secret" not in store.path.read_text(encoding="utf-8")
    assert payload["version"] == 1


def test_load_legacy_plaintext_api_key(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text(
        json.dumps({"base_url": "https://old", "api_key": "plain-key", "model": "gpt-3.5"}),
        encoding="utf-8",
    )

    loaded = store.load()

    assert loaded.api_key == "plain-key"
    assert loaded.base_url == "https://old"
    migrated = json.loads(store.path.read_text(encoding="utf-8"))
    assert "api_key" not in migrated
    assert store.vault.decrypt(migrated["api_key_ciphertext"]) == "plain-key"


@pytest.mark.parametrize("body", ["{not json", "[1, 2, 3]"])
def test_unreadable_file_falls_back_to_defaults(tmp_path: Path, body: str) -> None:
    store = _store(tmp_path)
    store.path.write_text(body, encoding="utf-8")

    assert store.load() == Settings()


def test_unknown_fields_are_ignored(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text(json.dumps({"model": "m", "theme": "dark", "version": 1}), encoding="utf-8")

    assert store.load().model == "m"


def test_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(base_url="https://local", api_key="abc"))
    monkeypatch.setenv("HIPPO_BASE_URL", "https://env-base")
    monkeypatch.setenv("HIPPO_API_KEY", "env-key")
    monkeypatch.setenv("HIPPO_DEBUG_LOGGING", "yes")
    monkeypatch.setenv("HIPPO_MAX_ROUND_TRIPS", "5")
    monkeypatch.setenv("HIPPO_TEMPERATURE", "warm")

    overridden = store.load()

    assert overridden.base_url == "https://env-base"
    assert overridden.api_key == "env-key"
    assert overridden.debug_logging is True
    assert overridden.max_round_trips == 5
    assert overridden.temperature == 0.2


def test_cli_overrides_merge_metadata(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(metadata={"env": "dev"}))

    loaded = store.load(overrides={"model": "cli-model", "metadata": {"run": "1"}, "bogus": 1})

    assert loaded.model == "cli-model"
    assert loaded.metadata == {"env": "dev", "run": "1"}


def test_orchestrator_config_from_settings() -> None:
    settings = Settings(max_round_trips=4, max_consecutive_errors=2, signature_window=3)

    config = OrchestratorConfig.from_settings(settings)

    assert config.loop_guard == LoopGuardConfig(
        max_round_trips=4, max_consecutive_errors=2, signature_window=3
    )


def test_resolved_chats_dir(tmp_path: Path) -> None:
    assert Settings().resolved_chats_dir(tmp_path) == tmp_path / "chats"
    assert Settings(chats_dir=str(tmp_path / "elsewhere")).resolved_chats_dir() == tmp_path / "elsewhere"


class TestSecretVault:
    def test_roundtrip_and_key_reuse(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "vault.key")
        token = vault.encrypt("sk-123")

        assert token.startswith("fernet:")
        assert SecretVault(key_path=tmp_path / "vault.key").decrypt(token) == "sk-123"
        assert vault.encrypt("") == ""
        assert vault.decrypt("") == ""

    def test_rejects_foreign_tokens(self, tmp_path: Path) -> None:
        token = SecretVault(key_path=tmp_path / "a.key").encrypt("sk-123")
        other = SecretVault(key_path=tmp_path / "b.key")

        with pytest.raises(ValueError):
            other.decrypt(token)
        with pytest.raises(ValueError):
            other.decrypt("rot13:abc")

    def test_undecryptable_key_loads_empty(self, tmp_path: Path) -> None:
        SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "a.key")).save(
            Settings(api_key="sk-123")
        )

        loaded = SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "b.key")).load()

        assert loaded.api_key == ""


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abc", "***"), ("sk-123456", "sk*****56")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected
