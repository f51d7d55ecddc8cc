"""Import — pull a branch of an external repo into a new branch of the hub.

The branch is squashed onto the external repo's default branch, translated
from the repo's mapped subpaths into the hub's, and committed as a single
commit on ``new_branch``, which is force-pushed to the hub's origin.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from git import GitCommandError

from monosync.errors import ApplyError, MappingError, MonosyncError
from monosync.settings import SyncSettings
from monosync.sync.authorship import build_message, get_authors, pick_squash_author
from monosync.sync.config import CONFIG_FILE, get_config, validate_config
from monosync.sync.fanout import run_fail_fast, run_settled
from monosync.sync.patch import translate
from monosync.utils.git_ops import GitRepo, get_remote_name

logger = logging.getLogger(__name__)


@dataclass
class ImportRequest:
    """What to import and where to put it."""

    base_repo_name: str
    head_branch: str
    message: str
    new_branch: str
    head_repo_name: str | None = None  # set when the branch lives in a fork

    @property
    def is_fork(self) -> bool:
        return bool(self.head_repo_name) and self.head_repo_name != self.base_repo_name

    @property
    def source(self) -> str:
        return f"{self.head_repo_name or self.base_repo_name}:{self.head_branch}"


class ImportEngine:
    """Imports external branches into one hub."""

    def __init__(self, hub: GitRepo, settings: SyncSettings):
        self.hub = hub
        self.settings = settings

    async def run(self, request: ImportRequest) -> None:
        started = time.perf_counter()
        hub = self.hub

        await hub.refresh()
        config = validate_config(await get_config(hub))
        mapping = config.mapping_for(request.base_repo_name)
        if not mapping:
            raise MappingError(request.base_repo_name, CONFIG_FILE)

        remote = get_remote_name(request.head_repo_name) if request.is_fork else "origin"
        head_ref = f"{remote}/{request.head_branch}"
        child = GitRepo(request.base_repo_name, self.settings)

        # prepare
        async def prepare_child():
            await child.refresh()
            if request.is_fork:
                await child.add_fork_remote(request.head_repo_name)
            await child.git("fetch", remote, request.head_branch)

        await run_fail_fast([hub.refresh(), prepare_child()])

        # import
        revision_range = f"HEAD...{head_ref}"
        operator, squash_author, authors = await run_fail_fast([
            self.operator_identity(),
            pick_squash_author(child, revision_range, mapping.repo_paths()),
            get_authors(child, revision_range, mapping.repo_paths()),
        ])
        author = squash_author or operator
        message = build_message(request.message, authors, author, operator)

        await child.git("merge", "--squash", head_ref)
        staged = await child.diff_staged()

        await hub.git("checkout", "-b", request.new_branch)
        for hub_path, repo_path in mapping:
            patch = translate(staged, repo_path, hub_path)
            if patch.is_empty:
                continue
            try:
                await hub.apply(patch)
            except GitCommandError as e:
                logger.error(f"failed to apply diff in {hub.repo_name}:\n{e.stderr}\n")
                raise ApplyError(hub.repo_name) from e

        if await hub.workdir_is_clean():
            raise MonosyncError(
                f"Nothing to import: '{request.source}' has no changes in the mapped paths"
            )

        await hub.git("add", "--all")
        commit_args = ["commit", f"--message={message}"]
        if author:
            commit_args.insert(1, f"--author={author}")
        await hub.git(*commit_args)
        await hub.git("push", "--force", "origin", request.new_branch)

        # cleanup
        async def reset_hub():
            await hub.git("checkout", self.settings.default_branch)
            await hub.git("branch", "-D", request.new_branch)

        async def reset_child():
            await child.git("reset", "--hard", "HEAD")
            if request.is_fork:
                await child.remove_fork_remote(request.head_repo_name)

        for outcome in await run_settled([reset_hub(), reset_child()]):
            if not outcome.ok:
                logger.warning(f"cleanup after importing '{request.source}' failed: {outcome.error}")

        logger.info(f"Imported from '{request.source}' in {time.perf_counter() - started:.1f}s")

    async def operator_identity(self) -> str | None:
        return self.settings.operator_identity or await self.hub.user_identity()
