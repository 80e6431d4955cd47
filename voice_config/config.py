"""Settings of the configuration store itself and env file placement."""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

from .crypto import DEFAULT_PASSPHRASE, DEFAULT_SALT

SETTINGS_FILENAME = "settings.yaml"
DEFAULT_APP_NAME = "voice-agent-desktop"
DEFAULT_ENV_FILENAME = ".env"
DEFAULT_PASSPHRASE_ENV = "VOICE_CONFIG_PASSPHRASE"


class ConfigError(Exception):
    """Raised when settings loading or validation fails."""


@dataclass
class StoreOptions:
    app_name: str = DEFAULT_APP_NAME
    env_filename: str = DEFAULT_ENV_FILENAME
    packaged: Optional[bool] = None
    passphrase_env: str = DEFAULT_PASSPHRASE_ENV
    passphrase: Optional[str] = None
    salt: str = DEFAULT_SALT.decode("ascii")

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "StoreOptions":
        data = data or {}
        packaged = data.get("packaged")
        return cls(
            app_name=data.get("app_name") or DEFAULT_APP_NAME,
            env_filename=data.get("env_filename") or DEFAULT_ENV_FILENAME,
            packaged=None if packaged is None else _safe_bool(packaged, "store.packaged"),
            passphrase_env=data.get("passphrase_env") or DEFAULT_PASSPHRASE_ENV,
            passphrase=data.get("passphrase"),
            salt=str(data.get("salt") or DEFAULT_SALT.decode("ascii")),
        )

    def to_dict(self) -> Dict:
        result: Dict[str, object] = {
            "app_name": self.app_name,
            "env_filename": self.env_filename,
            "packaged": self.packaged,
            "passphrase_env": self.passphrase_env,
            "passphrase": self.passphrase,
            "salt": self.salt,
        }
        return {key: value for key, value in result.items() if value is not None}


@dataclass
class RepositoryOptions:
    enabled: bool = True
    path: Optional[str] = None
    remote: Optional[str] = None
    branch: Optional[str] = None
    commit_message: str = "Config backup {timestamp_iso}"

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "RepositoryOptions":
        data = data or {}
        return cls(
            enabled=_safe_bool(data.get("enabled", True), "repository.enabled"),
            path=data.get("path"),
            remote=data.get("remote"),
            branch=data.get("branch"),
            commit_message=data.get("commit_message") or "Config backup {timestamp_iso}",
        )

    def to_dict(self) -> Dict:
        result: Dict[str, object] = {
            "enabled": self.enabled,
            "path": self.path,
            "remote": self.remote,
            "branch": self.branch,
            "commit_message": self.commit_message,
        }
        return {key: value for key, value in result.items() if value is not None}


@dataclass
class CloudOptions:
    enabled: bool = True
    credentials_path: str = "k/c.json"
    token_path: str = "k/t.json"
    snapshot_name: str = "env_backup_{timestamp}.env"
    folder_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "CloudOptions":
        data = data or {}
        return cls(
            enabled=_safe_bool(data.get("enabled", True), "cloud.enabled"),
            credentials_path=data.get("credentials_path") or "k/c.json",
            token_path=data.get("token_path") or "k/t.json",
            snapshot_name=data.get("snapshot_name") or "env_backup_{timestamp}.env",
            folder_id=data.get("folder_id"),
        )

    def to_dict(self) -> Dict:
        result: Dict[str, object] = {
            "enabled": self.enabled,
            "credentials_path": self.credentials_path,
            "token_path": self.token_path,
            "snapshot_name": self.snapshot_name,
            "folder_id": self.folder_id,
        }
        return {key: value for key, value in result.items() if value is not None}


@dataclass
class BackupOptions:
    wait_seconds: float = 2.0
    drain_seconds: float = 30.0

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "BackupOptions":
        data = data or {}
        return cls(
            wait_seconds=_safe_float(data.get("wait_seconds"), default=2.0, name="backup.wait_seconds"),
            drain_seconds=_safe_float(data.get("drain_seconds"), default=30.0, name="backup.drain_seconds"),
        )

    def to_dict(self) -> Dict:
        return {"wait_seconds": self.wait_seconds, "drain_seconds": self.drain_seconds}


@dataclass
class StoreSettings:
    store: StoreOptions = field(default_factory=StoreOptions)
    repository: RepositoryOptions = field(default_factory=RepositoryOptions)
    cloud: CloudOptions = field(default_factory=CloudOptions)
    backup: BackupOptions = field(default_factory=BackupOptions)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "StoreSettings":
        data = data or {}
        for key in ("store", "repository", "cloud", "backup"):
            if data.get(key) is not None and not isinstance(data[key], dict):
                raise ConfigError(f"Section '{key}' of the settings file must be a mapping.")
        return cls(
            store=StoreOptions.from_dict(data.get("store")),
            repository=RepositoryOptions.from_dict(data.get("repository")),
            cloud=CloudOptions.from_dict(data.get("cloud")),
            backup=BackupOptions.from_dict(data.get("backup")),
        )

    def to_dict(self) -> Dict:
        return {
            "store": self.store.to_dict(),
            "repository": self.repository.to_dict(),
            "cloud": self.cloud.to_dict(),
            "backup": self.backup.to_dict(),
        }

    def resolve_passphrase(self, environ: Optional[Dict[str, str]] = None) -> str:
        """Environment variable first, then the settings file, then the built-in default."""

        environ = os.environ if environ is None else environ
        return environ.get(self.store.passphrase_env) or self.store.passphrase or DEFAULT_PASSPHRASE


# ---------------------------------------------------------------------------
def _safe_bool(value, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "yes", "1", "on"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "no", "0", "off"}:
        return False
    raise ConfigError(f"Setting '{name}' must be a boolean, got '{value}'.")


def _safe_float(value, default: float, name: str) -> float:
    if value is None:
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Setting '{name}' must be a number, got '{value}'.")
    if result < 0:
        raise ConfigError(f"Setting '{name}' must not be negative.")
    return result


# ---------------------------------------------------------------------------
def user_data_dir(app_name: str, platform: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Path:
    """Return the per-user application data directory for *app_name*."""

    platform = platform or sys.platform
    environ = os.environ if environ is None else environ
    if platform.startswith("win"):
        base = Path(environ.get("APPDATA") or Path.home() / "AppData" / "Roaming")
    elif platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
    return base / app_name


def is_packaged() -> bool:
    return bool(getattr(sys, "frozen", False))


def resolve_env_path(
    packaged: bool,
    app_dir: Path,
    app_name: str = DEFAULT_APP_NAME,
    filename: str = DEFAULT_ENV_FILENAME,
) -> Path:
    """Installed builds keep the env file in the user data directory,
    development checkouts keep it next to the application."""

    if packaged:
        return user_data_dir(app_name) / filename
    return Path(app_dir) / filename


def resolve_app_path(app_dir: Path, value: str) -> Path:
    """Relative paths in the settings file are taken from the application directory."""

    path = Path(value).expanduser()
    return path if path.is_absolute() else Path(app_dir) / path


# ---------------------------------------------------------------------------
def load_settings(path: Path = Path(SETTINGS_FILENAME)) -> StoreSettings:
    path = Path(path)
    if not path.exists():
        return StoreSettings()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Settings file '{path}' is not valid YAML: {exc}") from exc
    if not data:
        return StoreSettings()
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file '{path}' must contain a mapping.")
    return StoreSettings.from_dict(data)


def save_settings(settings: StoreSettings, path: Path = Path(SETTINGS_FILENAME)) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(
            settings.to_dict(),
            fh,
            allow_unicode=True,
            sort_keys=False,
            default_flow_style=False,
        )


__all__ = [
    "BackupOptions",
    "CloudOptions",
    "ConfigError",
    "RepositoryOptions",
    "StoreOptions",
    "StoreSettings",
    "is_packaged",
    "load_settings",
    "resolve_app_path",
    "resolve_env_path",
    "save_settings",
    "user_data_dir",
]
