"""Shared fixtures: throwaway git repositories built through the git CLI."""

import os
import pathlib
import shutil
import subprocess

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

# 2024-01-05 14:03:22 UTC
BASE_TIME = 1704463402


class GitRepo:
    """A scratch repository with helpers to write files and commit."""

    def __init__(self, path: pathlib.Path, object_format: str = ""):
        self.path = path
        self._tick = 0
        self.env = dict(os.environ)
        self.env.update(
            GIT_AUTHOR_NAME="Ada Lovelace",
            GIT_AUTHOR_EMAIL="ada@example.com",
            GIT_COMMITTER_NAME="Ada Lovelace",
            GIT_COMMITTER_EMAIL="ada@example.com",
            GIT_CONFIG_NOSYSTEM="1",
            GIT_CONFIG_GLOBAL=os.devnull,
        )
        path.mkdir(parents=True)
        fmt = [f"--object-format={object_format}"] if object_format else []
        self.git("-c", "init.defaultBranch=main", "init", "-q", *fmt)
        self.git("symbolic-ref", "HEAD", "refs/heads/main")

    def git(self, *args: str) -> str:
        cp = subprocess.run(
            ["git", *args], cwd=self.path, env=self.env, check=True, capture_output=True, text=True
        )
        return cp.stdout.strip()

    def write(self, name: str, content) -> None:
        target = self.path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content)

    def commit(self, message: str, offset: str = "+0000") -> str:
        date = f"{BASE_TIME + self._tick * 60} {offset}"
        self._tick += 1
        self.env["GIT_AUTHOR_DATE"] = date
        self.env["GIT_COMMITTER_DATE"] = date
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def repos_dir(tmp_path):
    d = tmp_path / "repos"
    d.mkdir()
    return d


@pytest.fixture
def git_repo(repos_dir):
    return GitRepo(repos_dir / "demo")
