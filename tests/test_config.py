"""Tests for the settings file and env file placement."""

from pathlib import Path

import pytest

from voice_config.config import (
    ConfigError,
    StoreSettings,
    load_settings,
    resolve_env_path,
    save_settings,
    user_data_dir,
)
from voice_config.crypto import DEFAULT_PASSPHRASE


def test_missing_settings_file_gives_defaults(tmp_path):
    settings = load_settings(tmp_path / "settings.yaml")
    assert settings == StoreSettings()
    assert settings.repository.commit_message == "Config backup {timestamp_iso}"
    assert settings.cloud.snapshot_name == "env_backup_{timestamp}.env"
    assert settings.backup.wait_seconds == 2.0


def test_settings_round_trip(tmp_path):
    path = tmp_path / "conf" / "settings.yaml"
    settings = StoreSettings.from_dict(
        {
            "store": {"app_name": "caller", "packaged": True, "salt": "s1"},
            "repository": {"remote": "origin", "branch": "main"},
            "cloud": {"enabled": False, "folder_id": "folder-9"},
            "backup": {"wait_seconds": 0.5},
        }
    )
    save_settings(settings, path)
    loaded = load_settings(path)
    assert loaded == settings
    assert loaded.store.packaged is True
    assert loaded.cloud.folder_id == "folder-9"


def test_invalid_settings_raise_config_error(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("backup:\n  wait_seconds: soon\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)

    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)

    path.write_text("repository: [1, 2]\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)


def test_passphrase_resolution_order():
    settings = StoreSettings()
    assert settings.resolve_passphrase({}) == DEFAULT_PASSPHRASE
    settings.store.passphrase = "from-file"
    assert settings.resolve_passphrase({}) == "from-file"
    assert settings.resolve_passphrase({"VOICE_CONFIG_PASSPHRASE": "from-env"}) == "from-env"


def test_development_placement_is_next_to_the_app(tmp_path):
    assert resolve_env_path(False, tmp_path, "caller") == tmp_path / ".env"


def test_installed_placement_uses_user_data_dir(tmp_path, monkeypatch):
    monkeypatch.setattr("sys.platform", "linux")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    assert resolve_env_path(True, Path("/opt/app"), "caller") == tmp_path / "xdg" / "caller" / ".env"


def test_user_data_dir_per_platform(tmp_path):
    assert user_data_dir("caller", "win32", {"APPDATA": str(tmp_path)}) == tmp_path / "caller"
    assert user_data_dir("caller", "darwin", {}) == Path.home() / "Library" / "Application Support" / "caller"
    assert user_data_dir("caller", "linux", {}) == Path.home() / ".config" / "caller"
