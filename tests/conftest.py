"""Shared fixtures: real git repos in a temp directory.

Every repo is authored in ``sources/``, then published as a bare repo in
``remotes/`` which plays the part of the hosting provider. The settings
handed to the engines resolve repo names to those bare repos and keep the
engines' working copies in ``clones/``.
"""

import asyncio
import json
import os
import stat
from itertools import count
from pathlib import Path

import pytest
from git import Repo

from monosync.settings import SyncSettings
from monosync.sync.config import CONFIG_FILE
from monosync.utils.git_ops import GitRepo, sanitize_repo_name

OPERATOR = "Sync Operator <operator@example.com>"
DEFAULT_BRANCH = "main"


@pytest.fixture(autouse=True)
def git_environment(monkeypatch, tmp_path_factory):
    """Isolate git from the machine's config and give it a fixed identity."""
    global_config = tmp_path_factory.mktemp("gitconfig") / "config"
    global_config.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Committer")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "committer@example.com")


class Workspace:
    def __init__(self, root: Path):
        self.root = root
        self.sources = root / "sources"
        self.remotes = root / "remotes"
        self.settings = SyncSettings(
            clone_dir=root / "clones",
            default_branch=DEFAULT_BRANCH,
            remote_url=self.remote_url,
            operator_identity=OPERATOR,
        )
        self._checkouts = count()

    def remote_url(self, repo_name: str) -> str:
        return str(self.remotes / f"{sanitize_repo_name(repo_name)}.git")

    def create_repo(self, name: str, files: dict[str, str] | None = None) -> Repo:
        """A working repo on ``main`` with one commit holding ``files``."""
        repo = Repo.init(self.sources / sanitize_repo_name(name), mkdir=True, initial_branch=DEFAULT_BRANCH)
        write_files(repo, {"foo.txt": "foo", **(files or {})})
        commit_all(repo, "init commit")
        return repo

    def publish(self, repo: Repo, name: str) -> Repo:
        """Copy every branch of ``repo`` into the bare remote for ``name``."""
        return Repo.clone_from(repo.working_dir, self.remote_url(name), bare=True)

    def remote(self, name: str) -> Repo:
        return Repo(self.remote_url(name))

    def checkout(self, name: str, ref: str = DEFAULT_BRANCH) -> Path:
        """A fresh clone of the remote for ``name`` at ``ref``."""
        dest = self.root / "checkouts" / f"{sanitize_repo_name(name)}-{next(self._checkouts)}"
        Repo.clone_from(self.remote_url(name), dest, branch=ref)
        return dest

    def protect_branch(self, name: str, branch: str | None = DEFAULT_BRANCH) -> None:
        """Make the remote for ``name`` reject pushes to ``branch``, or to every branch when None."""
        match = f'[ "$ref" = "refs/heads/{branch}" ]' if branch else "true"
        _write_hook(
            Path(self.remote_url(name)) / "hooks" / "pre-receive",
            "#!/bin/sh\n"
            "while read old new ref; do\n"
            f"  if {match}; then\n"
            '    echo "branch is protected" >&2\n'
            "    exit 1\n"
            "  fi\n"
            "done\n",
        )

    def reject_commits(self, name: str) -> None:
        """Clone the working copy for ``name`` now and make it refuse every commit."""
        repo = GitRepo(name, self.settings)
        asyncio.run(repo.refresh())
        _write_hook(
            repo.local_path / ".git" / "hooks" / "pre-commit",
            "#!/bin/sh\necho \"commits are frozen\" >&2\nexit 1\n",
        )


def _write_hook(path: Path, script: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(script)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.fixture
def workspace(tmp_path):
    return Workspace(tmp_path)


# --- Helpers ---


def write_files(repo: Repo, files: dict[str, str | None]) -> None:
    """Write files relative to the repo root; a None value deletes the file."""
    root = Path(repo.working_dir)
    for rel_path, content in files.items():
        path = root / rel_path
        if content is None:
            path.unlink()
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def move_file(repo: Repo, old: str, new: str) -> None:
    root = Path(repo.working_dir)
    (root / new).parent.mkdir(parents=True, exist_ok=True)
    os.replace(root / old, root / new)


def commit_all(repo: Repo, message: str, author: str | None = None) -> None:
    repo.git.add("--all")
    if author:
        repo.git.commit("-m", message, author=author)
    else:
        repo.git.commit("-m", message)


def write_config(repo: Repo, mapping: dict) -> None:
    write_files(repo, {CONFIG_FILE: json.dumps({"mapping": mapping})})


def paragraphs(seed: str, n: int = 3) -> str:
    paragraph = f"{seed.capitalize()}{(' ' + seed) * 80}."
    return "\n\n".join([paragraph] * n) + "\n"


def tree(root: Path, subdir: str = "") -> dict[str, str]:
    """Relative path -> content for every file under ``root/subdir``, .git excluded."""
    base = root / subdir if subdir else root
    files = {}
    for path in base.rglob("*"):
        rel = path.relative_to(base)
        if ".git" in rel.parts or not path.is_file():
            continue
        files[rel.as_posix()] = path.read_text()
    return files


def last_commit(remote: Repo, ref: str = DEFAULT_BRANCH):
    return remote.commit(ref)
