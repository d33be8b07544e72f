from __future__ import annotations

import json
from pathlib import Path

import pytest

from config import apply_env_overrides, get_default_settings, load_settings, save_settings, settings_path
from constants import CONFIG_FILE, redact_postgres_dsn, sanitize_postgres_dsn

ENV_VARS = (
    "DATABASE_URL",
    "DB_CONNECTION_STRING",
    "SECRET_KEY",
    "GUARDCHAT_ACCESS_KEY",
    "GUARDCHAT_HISTORY_ON_JOIN",
    "GUARDCHAT_LOG_LEVEL",
    "GUARDCHAT_CONFIG",
    "GUARDCHAT_PORT",
    "PORT",
    "LOG_LEVEL",
    "GUARDCHAT_HISTORY_LIMIT",
    "GUARDCHAT_RATE_LIMIT_MS",
    "GUARDCHAT_HOST",
    "GUARDCHAT_SOCKETIO_MESSAGE_QUEUE",
    "GUARDCHAT_JANITOR_ENABLED",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_settings(tmp_path / "nope.json") == get_default_settings()

    def test_file_is_merged_over_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "server_config.json"
        path.write_text(json.dumps({"port": 8080, "access_key": "k"}), encoding="utf-8")
        settings = load_settings(path)
        assert settings["port"] == 8080
        assert settings["access_key"] == "k"
        assert settings["history_on_join"] is False

    def test_invalid_json_is_backed_up(self, tmp_path: Path) -> None:
        path = tmp_path / "server_config.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_settings(path) == get_default_settings()
        assert not path.exists()
        assert len(list(tmp_path.glob("server_config.json.bad-*"))) == 1

    def test_save_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "conf" / "server_config.json"
        settings = get_default_settings()
        settings["port"] = 9000
        save_settings(path, settings)
        assert load_settings(path)["port"] == 9000

    def test_settings_path_resolution(self, monkeypatch) -> None:
        assert settings_path() == Path(CONFIG_FILE)
        monkeypatch.setenv("GUARDCHAT_CONFIG", "/etc/guardchat.json")
        assert settings_path() == Path("/etc/guardchat.json")
        assert settings_path("cli.json") == Path("cli.json")


class TestEnvOverrides:
    def test_no_env_changes_nothing(self) -> None:
        assert apply_env_overrides(get_default_settings()) == get_default_settings()

    def test_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("DATABASE_URL", " postgresql://<user>:pw@db:5432/chat ")
        monkeypatch.setenv("GUARDCHAT_ACCESS_KEY", "k")
        monkeypatch.setenv("GUARDCHAT_HISTORY_ON_JOIN", "yes")
        monkeypatch.setenv("GUARDCHAT_LOG_LEVEL", "debug")
        monkeypatch.setenv("PORT", "8081")

        s = apply_env_overrides(get_default_settings())
        assert s["database_url"] == "postgresql://user:pw@db:5432/chat"
        assert s["access_key"] == "k"
        assert s["history_on_join"] is True
        assert s["log_level"] == "DEBUG"
        assert s["port"] == 8081

    def test_unparseable_values_are_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("GUARDCHAT_HISTORY_ON_JOIN", "maybe")
        monkeypatch.setenv("PORT", "eighty")
        s = apply_env_overrides(get_default_settings())
        assert s["history_on_join"] is False
        assert s["port"] == 5000


class TestDsnHelpers:
    def test_sanitize(self) -> None:
        assert sanitize_postgres_dsn("'postgresql://<u>:p@h/db'") == "postgresql://u:p@h/db"
        assert sanitize_postgres_dsn(None) is None

    def test_redact(self) -> None:
        assert redact_postgres_dsn("postgresql://u:secret@h:5432/db") == "postgresql://u:***@h:5432/db"
