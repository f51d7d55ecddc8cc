"""Git operations — persistent working copies and the primitives sync is built on.

Every repo name maps to exactly one local clone under ``settings.clone_dir``.
The clone is created on first use and refreshed in place afterwards.

GitPython is blocking, so each primitive is exposed as a coroutine that runs
the git process on the event loop's default executor. That lets one import or
land overlap work on several repos while the orchestration stays on a single
thread.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from git import GitCommandError, Repo

if TYPE_CHECKING:
    from monosync.settings import SyncSettings
    from monosync.sync.patch import PatchSet

logger = logging.getLogger(__name__)

# ASCII unit/record separators, emitted by git as %x1f / %x1e
_FIELD_SEP = "\x1f"
_COMMIT_SEP = "\x1e"

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\?<>:*|"\x00-\x1f\x80-\x9f]')
_RESERVED_WINDOWS_NAMES = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)


def sanitize_repo_name(repo_name: str) -> str:
    """Turn a repo name like ``owner/repo`` into a single safe directory name."""
    name = _UNSAFE_FILENAME_CHARS.sub("_", repo_name)
    name = name.lstrip(".").rstrip(". ")
    if _RESERVED_WINDOWS_NAMES.match(name):
        name = f"_{name}"
    name = name.encode("utf-8")[:255].decode("utf-8", "ignore")
    return name or "_"


def get_local_path(clone_dir: str | Path, repo_name: str) -> Path:
    return Path(clone_dir) / sanitize_repo_name(repo_name)


def get_remote_name(repo_name: str) -> str:
    """Name of the temporary remote for a fork: its owning namespace."""
    return repo_name.split("/")[0]


async def _in_executor(fn, *args, **kwargs):
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        # the git process keeps running in its thread; wait for it to exit
        await asyncio.wait([future])
        raise


class GitRepo:
    """A repo's persistent local working copy.

    Blocking implementations live in the underscore methods; the public
    coroutines wrap them.
    """

    def __init__(self, repo_name: str, settings: SyncSettings):
        self.repo_name = repo_name
        self.settings = settings
        self.local_path = get_local_path(settings.clone_dir, repo_name)
        self._repo: Repo | None = None

    def __repr__(self) -> str:
        return f"GitRepo({self.repo_name!r})"

    @property
    def repo(self) -> Repo:
        if self._repo is None:
            self._repo = Repo(self.local_path)
        return self._repo

    # ── Blocking primitives ──────────────────────────────────────────

    def _git(self, *args: str, quiet: bool = False, **kwargs):
        try:
            return self.repo.git.execute(["git", *args], **kwargs)
        except GitCommandError as e:
            if not quiet:
                logger.error(f"git error in {self.repo_name}:\n{e.stderr}\n")
            raise

    def _ensure_clone(self) -> None:
        if self.local_path.exists():
            return
        self.local_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning {self.repo_name} into {self.local_path}")
        self._repo = Repo.clone_from(self.settings.remote_url(self.repo_name), self.local_path)

    def _refresh(self) -> None:
        self._ensure_clone()
        branch = self.settings.default_branch
        current = self._current_branch()

        # drop anything left behind by an earlier, aborted call
        self._git("reset", "--hard", "HEAD")
        self._git("clean", "-fd")
        if current != branch:
            self._git("checkout", branch)
            if current != "HEAD":
                self._git("branch", "-D", current)

        self._git("fetch", "origin", branch)
        self._git("reset", "--hard", f"origin/{branch}")

    def _current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD")

    def _log(self, args: list[str], schema: dict[str, str]) -> list[dict[str, str]]:
        keys = list(schema)
        pretty = "%x1f".join(schema[key] for key in keys) + "%x1e"
        output = self._git("log", f"--pretty=format:{pretty}", *args)

        commits = []
        for chunk in output.split(_COMMIT_SEP):
            if not chunk.strip():
                continue
            values = [value.strip() for value in chunk.split(_FIELD_SEP)]
            commits.append(dict(zip(keys, values)))
        return commits

    def _diff_staged(self) -> PatchSet:
        from monosync.sync.patch import PatchSet

        raw = self._git(
            "-c", "core.quotepath=false",
            "diff", "--cached", "--binary", "--full-index", "--no-renames",
            stdout_as_string=False,
            strip_newline_in_stdout=False,
        )
        return PatchSet.parse(raw.decode("utf-8", "surrogateescape"))

    def _apply(self, patch: PatchSet) -> None:
        if patch.is_empty:
            return
        fd, patch_path = tempfile.mkstemp(prefix="monosync_", suffix=".patch")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(patch.render().encode("utf-8", "surrogateescape"))
            self._git("apply", "--whitespace=nowarn", patch_path)
        finally:
            os.unlink(patch_path)

    def _show(self, revision: str, path: str) -> str:
        return self._git("show", f"{revision}:{path}", quiet=True)

    def _add_fork_remote(self, fork_repo_name: str) -> None:
        name = get_remote_name(fork_repo_name)
        url = self.settings.remote_url(fork_repo_name)
        if name in [remote.name for remote in self.repo.remotes]:
            # left behind by an import that failed before cleanup
            self._git("remote", "set-url", name, url)
        else:
            self._git("remote", "add", name, url)

    def _user_identity(self) -> str | None:
        try:
            name = self._git("config", "--get", "user.name", quiet=True)
            email = self._git("config", "--get", "user.email", quiet=True)
        except GitCommandError:
            return None
        return f"{name} <{email}>"

    # ── Coroutines ───────────────────────────────────────────────────

    async def git(self, *args: str) -> str:
        """Run a raw git command in the working copy and return its stdout."""
        return await _in_executor(self._git, *args)

    async def ensure_clone(self) -> None:
        await _in_executor(self._ensure_clone)

    async def refresh(self) -> None:
        """Clone if needed, then hard-reset to the latest default branch of origin."""
        await _in_executor(self._refresh)

    async def current_branch(self) -> str:
        return await _in_executor(self._current_branch)

    async def log(self, args: list[str], schema: dict[str, str]) -> list[dict[str, str]]:
        """Run ``git log`` and return one dict per commit, newest first.

        ``schema`` maps result keys to git pretty-format placeholders::

            await repo.log(["HEAD", "-5"], {"sha": "%H", "author": "%an <%ae>"})
        """
        return await _in_executor(self._log, args, schema)

    async def diff_staged(self) -> PatchSet:
        """The staged changeset (``git diff --cached``), renames split into delete + add."""
        return await _in_executor(self._diff_staged)

    async def apply(self, patch: PatchSet) -> None:
        """Apply a patch to the working tree. An empty patch is a no-op."""
        await _in_executor(self._apply, patch)

    async def show(self, revision: str, path: str) -> str:
        """Contents of ``path`` at ``revision`` (not the working copy)."""
        return await _in_executor(self._show, revision, path)

    async def head_sha(self) -> str:
        return await self.git("rev-parse", "HEAD")

    async def workdir_is_clean(self) -> bool:
        status = await self.git("status", "--porcelain")
        return not status.strip()

    async def add_fork_remote(self, fork_repo_name: str) -> None:
        await _in_executor(self._add_fork_remote, fork_repo_name)

    async def remove_fork_remote(self, fork_repo_name: str) -> None:
        await self.git("remote", "remove", get_remote_name(fork_repo_name))

    async def user_identity(self) -> str | None:
        """``Name <email>`` from git config, or None when not configured."""
        return await _in_executor(self._user_identity)
