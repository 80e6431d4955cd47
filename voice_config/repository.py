"""Git working copy used as a backup transport."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

LOGGER = logging.getLogger(__name__)

NOTHING_TO_COMMIT_MARKERS = ("nothing to commit", "nothing added to commit", "no changes added to commit")


class RepositoryError(Exception):
    """Raised when a git command fails."""


@dataclass
class GitRepository:
    path: Path
    remote: Optional[str] = None
    branch: Optional[str] = None
    timeout: Optional[int] = 120
    git: str = "git"
    logger: logging.Logger = LOGGER

    def is_work_tree(self) -> bool:
        if not Path(self.path).is_dir():
            return False
        try:
            result = self._run(["rev-parse", "--is-inside-work-tree"], check=False)
        except RepositoryError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def contains(self, file_path: Path) -> bool:
        try:
            Path(file_path).resolve().relative_to(Path(self.path).resolve())
        except ValueError:
            return False
        return True

    def add(self, file_path: Path) -> None:
        self._run(["add", "--", str(file_path)])

    def commit(self, message: str) -> bool:
        """Commit staged changes. Returns ``False`` when there was nothing to commit."""

        result = self._run(["commit", "-m", message], check=False)
        if result.returncode == 0:
            return True
        output = f"{result.stdout}\n{result.stderr}".lower()
        if any(marker in output for marker in NOTHING_TO_COMMIT_MARKERS):
            self.logger.info("Nothing to commit in '%s'.", self.path)
            return False
        raise RepositoryError(f"git commit exited with code {result.returncode}: {result.stderr.strip()}")

    def push(self) -> None:
        self._run(["push", *self._target()])

    def fetch(self) -> None:
        self._run(["fetch", *self._target(branch=False)])

    def pull(self) -> None:
        self._run(["pull", "--no-rebase", "--no-edit", *self._target()])

    def is_tracked(self, file_path: Path) -> bool:
        result = self._run(["ls-files", "--error-unmatch", "--", str(file_path)], check=False)
        return result.returncode == 0

    def checkout(self, file_path: Path) -> None:
        """Reset *file_path* in the index and the working tree to its committed state."""

        self._run(["checkout", "HEAD", "--", str(file_path)])

    def conflicted_files(self) -> List[Path]:
        top = self._run(["rev-parse", "--show-toplevel"]).stdout.strip()
        output = self._run(["diff", "--name-only", "--diff-filter=U"]).stdout
        names = dict.fromkeys(line.strip() for line in output.splitlines() if line.strip())
        return [(Path(top) / name).resolve() for name in names]

    def resolve_with_ours(self, file_path: Path) -> None:
        """Finish an interrupted merge keeping the local side of *file_path*."""

        self._run(["checkout", "--ours", "--", str(file_path)])
        self._run(["add", "--", str(file_path)])
        self._run(["commit", "--no-edit"])

    def abort_merge(self) -> None:
        self._run(["merge", "--abort"], check=False)

    # ------------------------------------------------------------------
    def _target(self, branch: bool = True) -> List[str]:
        if not self.remote:
            return []
        if branch and self.branch:
            return [self.remote, self.branch]
        return [self.remote]

    # ------------------------------------------------------------------
    def _run(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess:
        command = [self.git, *args]
        self.logger.info("Running: %s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                cwd=str(self.path),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise RepositoryError(f"'{' '.join(command)}' exceeded the {self.timeout} second timeout.") from exc
        except OSError as exc:
            raise RepositoryError(f"Could not run git: {exc}") from exc
        if result.stdout:
            self.logger.debug("STDOUT: %s", result.stdout.strip())
        if result.stderr:
            self.logger.debug("STDERR: %s", result.stderr.strip())
        if check and result.returncode != 0:
            raise RepositoryError(
                f"'{' '.join(command)}' exited with code {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        return result


__all__ = ["GitRepository", "RepositoryError"]
