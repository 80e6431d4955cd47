"""The configuration store handle used by the application."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .backup import BackupError, BackupSync, SyncOutcome
from .cloud import DriveUploader
from .config import StoreSettings, is_packaged, resolve_app_path, resolve_env_path
from .crypto import decrypt_config, derive_key, encrypt_config
from .envfile import CONFIG_KEY, EnvFileStore, parse_env_text
from .repository import GitRepository
from .schema import Configuration, defaults, merge

LOGGER = logging.getLogger(__name__)

SAVED = "saved"
SAVED_WITH_WARNING = "saved_with_warning"
FAILED = "failed"


class StoreError(Exception):
    """Raised when a user-initiated store operation cannot be carried out."""


@dataclass(frozen=True)
class SaveResult:
    ok: bool
    warning: Optional[str] = None
    error: Optional[str] = None
    outcomes: Tuple[SyncOutcome, ...] = ()
    pending: int = 0

    @property
    def status(self) -> str:
        if not self.ok:
            return FAILED
        return SAVED_WITH_WARNING if self.warning else SAVED

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"ok": self.ok}
        if self.warning:
            result["warning"] = self.warning
        if self.error:
            result["error"] = self.error
        return result


class ConfigStore:
    """Encrypted configuration persisted in an env file.

    The env file location and the encryption key are fixed when the store is
    built. One instance is meant to be created at startup and shared.
    """

    def __init__(
        self,
        env_store: EnvFileStore,
        key: bytes,
        backup: Optional[BackupSync] = None,
        *,
        packaged: bool = False,
        wait_seconds: float = 2.0,
        drain_seconds: float = 30.0,
    ) -> None:
        self.env_store = env_store
        self.backup = backup
        self.packaged = packaged
        self.wait_seconds = wait_seconds
        self.drain_seconds = drain_seconds
        self._key = key
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: StoreSettings,
        app_dir: Path,
        *,
        packaged: Optional[bool] = None,
        on_backup: Optional[Callable[[SyncOutcome], None]] = None,
    ) -> "ConfigStore":
        app_dir = Path(app_dir)
        if packaged is None:
            packaged = settings.store.packaged if settings.store.packaged is not None else is_packaged()
        env_path = resolve_env_path(packaged, app_dir, settings.store.app_name, settings.store.env_filename)
        LOGGER.info("Using env file '%s' (%s).", env_path, "installed" if packaged else "development")
        env_store = EnvFileStore(env_path)

        repository = GitRepository(
            path=resolve_app_path(app_dir, settings.repository.path or "."),
            remote=settings.repository.remote,
            branch=settings.repository.branch,
        )
        uploader = DriveUploader(
            credentials_path=resolve_app_path(app_dir, settings.cloud.credentials_path),
            token_path=resolve_app_path(app_dir, settings.cloud.token_path),
        )
        backup = BackupSync(
            env_store=env_store,
            repository=repository,
            uploader=uploader,
            repository_options=settings.repository,
            cloud_options=settings.cloud,
            on_outcome=on_backup,
        )
        key = derive_key(settings.resolve_passphrase(), settings.store.salt)
        return cls(
            env_store,
            key,
            backup,
            packaged=packaged,
            wait_seconds=settings.backup.wait_seconds,
            drain_seconds=settings.backup.drain_seconds,
        )

    @property
    def env_path(self) -> Path:
        return self.env_store.path

    # ------------------------------------------------------------------
    def load(self) -> Configuration:
        """Return the stored configuration filled with defaults. Never raises."""

        try:
            env = self.env_store.read()
        except (OSError, ValueError) as exc:
            LOGGER.error("Could not read env file '%s': %s", self.env_path, exc)
            return defaults()
        return merge(defaults(), self._decrypt(env))

    def save(self, partial: Union[Configuration, Mapping[str, Any], None]) -> SaveResult:
        """Merge *partial* over the stored configuration and persist it.

        A local failure leaves the env file untouched and yields ``ok=False``.
        Backups run in the background; failures that finish within
        ``wait_seconds`` are reported as a warning, later ones through
        :py:meth:`backup_status`.
        """

        with self._lock:
            try:
                env = self.env_store.read()
                current = merge(defaults(), self._decrypt(env))
                updated = merge(current, partial)
                env[CONFIG_KEY] = encrypt_config(self._key, updated.to_dict())
                self.env_store.write(env)
            except (OSError, ValueError, TypeError) as exc:
                LOGGER.error("Failed to save config to '%s': %s", self.env_path, exc)
                return SaveResult(ok=False, error=str(exc))
        LOGGER.info("Config saved to '%s'.", self.env_path)

        if self.backup is None:
            return SaveResult(ok=True)
        futures = self.backup.dispatch(updated.drive.folder_id, cloud_enabled=updated.drive.enabled)
        done, not_done = wait(futures, timeout=self.wait_seconds)
        outcomes = tuple(future.result() for future in futures if future in done)
        warnings = [outcome.describe() for outcome in outcomes if outcome.failed]
        if not_done:
            LOGGER.info("%d backup(s) still running; results will be reported later.", len(not_done))
        return SaveResult(
            ok=True,
            warning="; ".join(warnings) or None,
            outcomes=outcomes,
            pending=len(not_done),
        )

    # ------------------------------------------------------------------
    def sync_backup(self, timeout: Optional[float] = None) -> List[SyncOutcome]:
        """Run both backups now and wait for them."""

        if self.backup is None:
            return []
        drive = self.load().drive
        futures = self.backup.dispatch(drive.folder_id, cloud_enabled=drive.enabled)
        wait(futures, timeout=timeout)
        return [future.result() for future in futures if future.done()]

    def backup_status(self) -> Dict[str, SyncOutcome]:
        if self.backup is None:
            return {}
        return self.backup.last_outcomes()

    def drain_backups(self, timeout: Optional[float] = None) -> bool:
        if self.backup is None:
            return True
        return self.backup.drain(self.drain_seconds if timeout is None else timeout)

    def close(self) -> None:
        self.drain_backups()
        if self.backup is not None:
            self.backup.shutdown()

    # ------------------------------------------------------------------
    def restore_from_file(self, path: Path) -> Configuration:
        """Replace the local env file with the content of *path*."""

        source = Path(path)
        if not source.is_file():
            raise StoreError(f"Backup file '{source}' not found.")
        try:
            content = source.read_bytes()
        except OSError as exc:
            raise StoreError(f"Backup file '{source}' could not be read: {exc}") from exc
        try:
            env = parse_env_text(content.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise StoreError(f"Backup file '{source}' is not a UTF-8 env file: {exc}") from exc
        with self._lock:
            try:
                self.env_store.write_bytes(content)
            except OSError as exc:
                raise StoreError(f"Could not write env file '{self.env_path}': {exc}") from exc
        LOGGER.info("Env file '%s' restored from '%s'.", self.env_path, source)
        if env.get(CONFIG_KEY) and self._decrypt(env) is None:
            LOGGER.warning("Restored file cannot be decrypted with the current passphrase; defaults apply.")
        return self.load()

    def pull_latest(self) -> None:
        """Update the development checkout without touching the local env file."""

        if self.packaged:
            raise StoreError("Pulling from the repository is only available in a development checkout.")
        if self.backup is None:
            raise StoreError("No repository is configured.")
        with self._lock:
            try:
                self.backup.pull_latest()
            except BackupError as exc:
                raise StoreError(str(exc)) from exc

    # ------------------------------------------------------------------
    def _decrypt(self, env: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        text = env.get(CONFIG_KEY)
        if not text:
            return None
        data = decrypt_config(self._key, text)
        if data is None:
            LOGGER.warning("Stored config could not be decrypted; using defaults.")
        return data


__all__ = ["ConfigStore", "SaveResult", "StoreError"]
