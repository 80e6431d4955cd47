from pathlib import Path
from typing import List, Optional

import pytest

from voice_config.crypto import derive_key
from voice_config.repository import RepositoryError


@pytest.fixture(scope="session")
def key() -> bytes:
    return derive_key("test-passphrase", b"test-salt")


class FakeRepository:
    """Stands in for GitRepository; records the git steps it is asked to run."""

    def __init__(
        self,
        path: Path,
        *,
        fail_on: Optional[str] = None,
        work_tree: bool = True,
        committed: bool = True,
        pulled_files: Optional[dict] = None,
        tracked: bool = True,
        conflicts: Optional[list] = None,
    ):
        self.path = Path(path)
        self.fail_on = fail_on
        self.work_tree = work_tree
        self.committed = committed
        self.pulled_files = pulled_files or {}
        self.tracked = tracked
        self.conflicts = [Path(path).resolve() for path in conflicts or []]
        self.calls: List[str] = []
        self.messages: List[str] = []

    def is_work_tree(self) -> bool:
        return self.work_tree

    def contains(self, file_path: Path) -> bool:
        try:
            Path(file_path).resolve().relative_to(self.path.resolve())
        except ValueError:
            return False
        return True

    def add(self, file_path: Path) -> None:
        self._step("add")

    def commit(self, message: str) -> bool:
        self._step("commit")
        self.messages.append(message)
        return self.committed

    def push(self) -> None:
        self._step("push")

    def fetch(self) -> None:
        self._step("fetch")

    def pull(self) -> None:
        for path, content in self.pulled_files.items():
            Path(path).write_bytes(content)
        self._step("pull")

    def is_tracked(self, file_path: Path) -> bool:
        return self.tracked

    def checkout(self, file_path: Path) -> None:
        self._step("checkout")

    def conflicted_files(self) -> List[Path]:
        return list(self.conflicts)

    def resolve_with_ours(self, file_path: Path) -> None:
        self._step("resolve")
        self.conflicts = []

    def abort_merge(self) -> None:
        self._step("abort")
        self.conflicts = []

    def _step(self, name: str) -> None:
        self.calls.append(name)
        if name == self.fail_on:
            raise RepositoryError(f"git {name} failed: could not resolve host")


class FakeUploader:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.uploads: List[tuple] = []

    def upload_file(self, local_path: Path, folder_id: str, name: Optional[str] = None) -> str:
        if self.error is not None:
            raise self.error
        self.uploads.append((Path(local_path).read_bytes(), folder_id, name))
        return f"file-{len(self.uploads)}"


@pytest.fixture
def fake_repository_cls():
    return FakeRepository


@pytest.fixture
def fake_uploader_cls():
    return FakeUploader

