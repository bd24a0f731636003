"""Shared fixtures: throwaway git repositories with a bare remote."""

import subprocess
from pathlib import Path

import pytest


def git(cwd: Path, *args: str) -> str:
    """Run git synchronously for test setup and assertions."""
    result = subprocess.run(
        ["git", "-C", str(cwd), *args],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def commit_file(cwd: Path, name: str, content: str, message: str | None = None) -> str:
    """Write a file, commit it and return the new HEAD."""
    path = cwd / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(cwd, "add", name)
    git(cwd, "commit", "-q", "-m", message or f"update {name}")
    return git(cwd, "rev-parse", "HEAD")


@pytest.fixture
def git_env(tmp_path, monkeypatch):
    """Isolate git from the user's config and give it an identity."""
    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var, value in [
        ("GIT_AUTHOR_NAME", "Test"),
        ("GIT_AUTHOR_EMAIL", "test@example.com"),
        ("GIT_COMMITTER_NAME", "Test"),
        ("GIT_COMMITTER_EMAIL", "test@example.com"),
    ]:
        monkeypatch.setenv(var, value)


@pytest.fixture
def remote(tmp_path, git_env) -> Path:
    path = tmp_path / "remote.git"
    subprocess.run(["git", "init", "-q", "--bare", "-b", "main", str(path)], check=True)
    return path


@pytest.fixture
def repo(tmp_path, remote) -> Path:
    """Repo on main with one commit, a sprint branch and origin set up."""
    path = tmp_path / "repo"
    subprocess.run(["git", "init", "-q", "-b", "main", str(path)], check=True)
    commit_file(path, ".gitignore", ".worktrees/\n", "initial")
    commit_file(path, "app.txt", "line one\nline two\n", "add app")
    git(path, "branch", "feature/s1-base")
    git(path, "remote", "add", "origin", str(remote))
    git(path, "push", "-q", "-u", "origin", "main", "feature/s1-base")
    return path
