"""Tests for the git transport with subprocess replaced."""

import subprocess

import pytest

from voice_config.repository import GitRepository, RepositoryError


class Recorder:
    def __init__(self, results=None):
        self.results = results or {}
        self.commands = []

    def __call__(self, command, **kwargs):
        self.commands.append(command)
        returncode, stdout, stderr = self.results.get(command[1], (0, "", ""))
        return subprocess.CompletedProcess(command, returncode, stdout, stderr)


@pytest.fixture
def recorder(monkeypatch):
    recorder = Recorder()
    monkeypatch.setattr("voice_config.repository.subprocess.run", recorder)
    return recorder


def test_add_commit_push_commands(tmp_path, recorder):
    repo = GitRepository(tmp_path, remote="origin", branch="main")
    repo.add(tmp_path / ".env")
    assert repo.commit("Config backup") is True
    repo.push()
    assert recorder.commands == [
        ["git", "add", "--", str(tmp_path / ".env")],
        ["git", "commit", "-m", "Config backup"],
        ["git", "push", "origin", "main"],
    ]


def test_fetch_and_pull_without_remote(tmp_path, recorder):
    repo = GitRepository(tmp_path)
    repo.fetch()
    repo.pull()
    assert recorder.commands == [["git", "fetch"], ["git", "pull", "--no-rebase", "--no-edit"]]


def test_nothing_to_commit_is_not_an_error(tmp_path, recorder):
    recorder.results["commit"] = (1, "On branch main\nnothing to commit, working tree clean\n", "")
    assert GitRepository(tmp_path).commit("msg") is False


def test_commit_failure_raises(tmp_path, recorder):
    recorder.results["commit"] = (128, "", "fatal: unable to auto-detect email address")
    with pytest.raises(RepositoryError, match="auto-detect"):
        GitRepository(tmp_path).commit("msg")


def test_push_failure_raises(tmp_path, recorder):
    recorder.results["push"] = (128, "", "fatal: Could not read from remote repository.")
    with pytest.raises(RepositoryError, match="remote repository"):
        GitRepository(tmp_path, remote="origin").push()


def test_missing_git_binary_raises(tmp_path, monkeypatch):
    def missing(command, **kwargs):
        raise FileNotFoundError("git")

    monkeypatch.setattr("voice_config.repository.subprocess.run", missing)
    with pytest.raises(RepositoryError):
        GitRepository(tmp_path).push()
    assert GitRepository(tmp_path).is_work_tree() is False


def test_is_work_tree(tmp_path, recorder):
    recorder.results["rev-parse"] = (0, "true\n", "")
    assert GitRepository(tmp_path).is_work_tree() is True
    assert GitRepository(tmp_path / "absent").is_work_tree() is False


def test_contains(tmp_path):
    repo = GitRepository(tmp_path)
    assert repo.contains(tmp_path / "sub" / ".env")
    assert not repo.contains(tmp_path.parent / "elsewhere" / ".env")


def test_conflicted_files_are_resolved_against_the_top_level(tmp_path, recorder):
    recorder.results["rev-parse"] = (0, f"{tmp_path}\n", "")
    recorder.results["diff"] = (0, ".env\nsub/app.txt\n.env\n", "")
    assert GitRepository(tmp_path).conflicted_files() == [
        (tmp_path / ".env").resolve(),
        (tmp_path / "sub" / "app.txt").resolve(),
    ]


def test_resolve_with_ours_commands(tmp_path, recorder):
    env_path = tmp_path / ".env"
    GitRepository(tmp_path).resolve_with_ours(env_path)
    assert recorder.commands == [
        ["git", "checkout", "--ours", "--", str(env_path)],
        ["git", "add", "--", str(env_path)],
        ["git", "commit", "--no-edit"],
    ]


def test_is_tracked(tmp_path, recorder):
    assert GitRepository(tmp_path).is_tracked(tmp_path / ".env") is True
    recorder.results["ls-files"] = (1, "", "error: pathspec '.env' did not match any file(s) known to git")
    assert GitRepository(tmp_path).is_tracked(tmp_path / ".env") is False
