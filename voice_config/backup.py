"""Best-effort replication of the env file to git and Google Drive."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .cloud import CloudUploadError, CredentialsMissingError, DriveUploader
from .config import CloudOptions, RepositoryOptions
from .envfile import EnvFileStore
from .repository import GitRepository, RepositoryError
from .utils import render_template, timestamp_context

LOGGER = logging.getLogger(__name__)

REPOSITORY = "repository"
CLOUD = "cloud"

OK = "ok"
SKIPPED = "skipped"
FAILED = "failed"


class BackupError(Exception):
    """Raised when a backup operation the user asked for explicitly fails."""


@dataclass(frozen=True)
class SyncOutcome:
    target: str
    status: str
    message: str = ""

    @property
    def failed(self) -> bool:
        return self.status == FAILED

    def describe(self) -> str:
        label = "Repository backup" if self.target == REPOSITORY else "Cloud backup"
        return f"{label} {self.status}: {self.message}" if self.message else f"{label} {self.status}"


@dataclass
class BackupSync:
    env_store: EnvFileStore
    repository: Optional[GitRepository] = None
    uploader: Optional[DriveUploader] = None
    repository_options: RepositoryOptions = field(default_factory=RepositoryOptions)
    cloud_options: CloudOptions = field(default_factory=CloudOptions)
    on_outcome: Optional[Callable[[SyncOutcome], None]] = None
    logger: logging.Logger = LOGGER

    def __post_init__(self) -> None:
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []
        self._outcomes: Dict[str, SyncOutcome] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def sync_to_repository(self, now: Optional[datetime] = None) -> SyncOutcome:
        """Stage, commit and push the env file. Never raises."""

        if not self.repository_options.enabled or self.repository is None:
            return SyncOutcome(REPOSITORY, SKIPPED, "repository sync is not configured")
        env_path = self.env_store.path
        if not self.repository.is_work_tree():
            return SyncOutcome(REPOSITORY, SKIPPED, f"'{self.repository.path}' is not a git working copy")
        if not self.repository.contains(env_path):
            return SyncOutcome(REPOSITORY, SKIPPED, f"'{env_path}' is outside the working copy")

        try:
            message = render_template(self.repository_options.commit_message, timestamp_context(now))
            self.repository.add(env_path)
            committed = self.repository.commit(message)
            self.repository.push()
        except (RepositoryError, ValueError) as exc:
            self.logger.warning("Repository backup failed: %s", exc)
            return SyncOutcome(REPOSITORY, FAILED, str(exc))
        self.logger.info("Env file pushed to the repository%s.", "" if committed else " (no changes)")
        return SyncOutcome(REPOSITORY, OK, "committed and pushed" if committed else "nothing to commit")

    # ------------------------------------------------------------------
    def sync_to_cloud_folder(
        self, folder_id: Optional[str], now: Optional[datetime] = None, enabled: bool = True
    ) -> SyncOutcome:
        """Upload a timestamped copy of the env file to *folder_id*. Never raises.

        *enabled* is the Drive switch from the stored configuration.
        """

        if not enabled:
            return SyncOutcome(CLOUD, SKIPPED, "Drive backup is turned off")
        folder_id = folder_id or self.cloud_options.folder_id
        if not folder_id:
            return SyncOutcome(CLOUD, SKIPPED, "no destination folder configured")
        if not self.cloud_options.enabled or self.uploader is None:
            return SyncOutcome(CLOUD, SKIPPED, "cloud sync is not configured")
        if not self.env_store.exists():
            return SyncOutcome(CLOUD, FAILED, f"env file '{self.env_store.path}' does not exist")

        try:
            name = render_template(self.cloud_options.snapshot_name, timestamp_context(now))
            file_id = self.uploader.upload_file(self.env_store.path, folder_id, name=name)
        except CredentialsMissingError as exc:
            self.logger.warning("Cloud backup unavailable: %s", exc)
            return SyncOutcome(CLOUD, FAILED, str(exc))
        except (CloudUploadError, ValueError) as exc:
            self.logger.warning("Cloud backup failed: %s", exc)
            return SyncOutcome(CLOUD, FAILED, str(exc))
        return SyncOutcome(CLOUD, OK, f"uploaded as {name} ({file_id})")

    # ------------------------------------------------------------------
    def dispatch(self, folder_id: Optional[str], cloud_enabled: bool = True) -> List[Future]:
        """Run both syncs in the background and return their futures."""

        executor = self._get_executor()
        futures = [
            executor.submit(self._run, self.sync_to_repository),
            executor.submit(self._run, self.sync_to_cloud_folder, folder_id, None, cloud_enabled),
        ]
        with self._lock:
            self._pending = [future for future in self._pending if not future.done()] + futures
        return futures

    def drain(self, timeout: Optional[float]) -> bool:
        """Wait for in-flight syncs. Returns ``True`` when none is left running."""

        with self._lock:
            pending = list(self._pending)
        if pending:
            self.logger.info("Waiting up to %s seconds for %d backup(s).", timeout, len(pending))
        _, not_done = wait(pending, timeout=timeout)
        if not_done:
            self.logger.warning("%d backup(s) still running at shutdown.", len(not_done))
        return not not_done

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def last_outcomes(self) -> Dict[str, SyncOutcome]:
        with self._lock:
            return dict(self._outcomes)

    # ------------------------------------------------------------------
    def pull_latest(self) -> None:
        """Pull the working copy while keeping the local env file as it was.

        The env file is put back to its committed state before the pull so that
        local edits never block it. A merge conflict limited to the env file is
        settled in favour of the local side; any other conflict aborts the merge.
        The bytes that were on disk before the call are always written back.
        """

        if self.repository is None or not self.repository.is_work_tree():
            raise BackupError("No git working copy is configured.")
        env_path = self.env_store.path
        snapshot = self.env_store.read_bytes()
        try:
            if self.repository.is_tracked(env_path):
                self.repository.checkout(env_path)
            elif snapshot is not None:
                self.env_store.write_bytes(None)
            self.repository.fetch()
            try:
                self.repository.pull()
            except RepositoryError as exc:
                self._settle_conflicts(exc)
        except RepositoryError as exc:
            raise BackupError(f"Pull failed: {exc}") from exc
        finally:
            self.env_store.write_bytes(snapshot)
            self.logger.info("Local env file '%s' restored after pull.", env_path)

    def _settle_conflicts(self, error: RepositoryError) -> None:
        conflicts = self.repository.conflicted_files()
        if not conflicts:
            raise error
        if conflicts == [self.env_store.path.resolve()]:
            self.logger.warning("Env file changed on both sides; keeping the local copy.")
            self.repository.resolve_with_ours(self.env_store.path)
            return
        self.repository.abort_merge()
        names = ", ".join(str(path) for path in conflicts)
        raise BackupError(f"Pull stopped on conflicting files: {names}. The merge was aborted.") from error

    # ------------------------------------------------------------------
    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="config-backup")
        return self._executor

    def _run(self, operation: Callable[..., SyncOutcome], *args) -> SyncOutcome:
        try:
            outcome = operation(*args)
        except Exception as exc:  # pragma: no cover - runtime safety
            self.logger.exception("Unexpected backup error: %s", exc)
            target = REPOSITORY if operation == self.sync_to_repository else CLOUD
            outcome = SyncOutcome(target, FAILED, str(exc))
        with self._lock:
            self._outcomes[outcome.target] = outcome
        if self.on_outcome is not None:
            self.on_outcome(outcome)
        return outcome


__all__ = ["BackupError", "BackupSync", "SyncOutcome"]
