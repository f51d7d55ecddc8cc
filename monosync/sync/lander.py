"""Land — push a hub branch to the hub and to every mapped repo.

Landing runs in phases:

1. **prepare**: refresh the hub, fetch the branch (through a temporary
   remote when it lives in a fork), read the mapping *at the branch head*
   and squash the branch into the hub's working copy.
2. **apply-all**: translate the staged hub change into each mapped repo's
   scope and apply it there. Fail-fast: if any repo rejects its patch the
   land stops before anything is committed anywhere.
3. **commit-and-push**: every repo with changes (the hub included) commits
   with its own author and message, then pushes to its default branch.
   Repos are independent: one failed push does not affect the others.
4. **fallback**: repos whose push failed get their commit pushed to the
   fallback branch instead, and the land fails with a :class:`PushError`
   naming them.
5. **cleanup**: the temporary fork remote is removed, whatever happened.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from git import GitCommandError

from monosync.errors import ApplyError, PushError
from monosync.settings import SyncSettings
from monosync.sync.authorship import build_message, get_authors, pick_squash_author
from monosync.sync.config import RepoMapping, get_config, validate_config
from monosync.sync.fanout import run_fail_fast, run_settled
from monosync.sync.patch import PatchSet, translate
from monosync.utils.git_ops import GitRepo, get_remote_name

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "generic"


@dataclass
class LandRequest:
    """What to land.

    ``commit_messages`` must hold a ``"generic"`` message; a message keyed
    by repo name overrides it for that repo.
    """

    commit_messages: dict[str, str]
    fallback_branch: str
    head_branch: str
    head_repo_name: str | None = None

    def __post_init__(self):
        if not self.commit_messages.get(GENERIC_MESSAGE):
            raise ValueError("commit_messages needs a non-empty 'generic' message")

    def message_for(self, repo_name: str) -> str:
        return self.commit_messages.get(repo_name) or self.commit_messages[GENERIC_MESSAGE]


@dataclass
class LandedCommit:
    """The commit a repo received from a land."""

    sha: str

    def to_dict(self) -> dict:
        return {"sha": self.sha}


@dataclass
class _CommitPlan:
    repo: GitRepo
    author: str | None
    message: str


class LandEngine:
    """Lands hub branches for one hub."""

    def __init__(self, hub: GitRepo, settings: SyncSettings):
        self.hub = hub
        self.settings = settings

    async def run(self, request: LandRequest) -> dict[str, LandedCommit]:
        """Land ``request.head_branch``.

        Returns:
            Repo name -> landed commit, for every repo that received a
            non-empty commit and pushed it to its default branch.

        Raises:
            ConfigError: the branch head has no valid mapping document.
            ApplyError: a repo rejected its patch; nothing was committed.
            PushError: some pushes failed and went to the fallback branch. It
                also names repos whose fallback push failed and repos that
                failed to land for any other reason.
        """
        started = time.perf_counter()
        hub = self.hub
        is_fork = bool(request.head_repo_name) and request.head_repo_name != hub.repo_name
        remote = get_remote_name(request.head_repo_name) if is_fork else "origin"

        await hub.refresh()
        if is_fork:
            await hub.add_fork_remote(request.head_repo_name)

        try:
            await hub.git("fetch", remote, request.head_branch)
            landed = await self._land(request, f"{remote}/{request.head_branch}")
        finally:
            if is_fork:
                await hub.remove_fork_remote(request.head_repo_name)

        logger.info(f"Landed '{request.head_branch}' in {time.perf_counter() - started:.1f}s")
        return landed

    async def _land(self, request: LandRequest, head_ref: str) -> dict[str, LandedCommit]:
        hub = self.hub

        # the mapping that ships with the change is the one that applies
        config = validate_config(await get_config(hub, head_ref))
        base_sha = await hub.head_sha()

        await hub.git("merge", "--squash", head_ref)
        staged = await hub.diff_staged()

        targets = {
            name: config.mapping_for(name) for name in config.mapped_repos() if name != hub.repo_name
        }
        repos = {name: GitRepo(name, self.settings) for name in targets}

        await run_fail_fast([
            self._apply_to_repo(repos[name], mapping, staged) for name, mapping in targets.items()
        ])

        # the hub lands its whole change like any other repo
        targets[hub.repo_name] = RepoMapping.root()
        repos[hub.repo_name] = hub

        operator = await self.operator_identity()
        plans = await run_fail_fast([
            self._plan_commit(repos[name], mapping, request, f"{base_sha}...{head_ref}", operator)
            for name, mapping in targets.items()
        ])
        plans = [plan for plan in plans if plan is not None]

        outcomes = await run_settled([self._commit_and_push(plan, request) for plan in plans])

        landed: dict[str, LandedCommit] = {}
        failed_pushes: list[str] = []
        failures: dict[str, BaseException] = {}
        for plan, outcome in zip(plans, outcomes):
            if outcome.ok:
                landed[plan.repo.repo_name] = outcome.value
            elif isinstance(outcome.error, PushError):
                failed_pushes.extend(outcome.error.repos)
            else:
                failures[plan.repo.repo_name] = outcome.error

        if not failed_pushes:
            if failures:
                raise next(iter(failures.values()))
            return landed

        # every repo gets its fallback push, whatever happens to the others
        fallback_outcomes = await run_settled([
            self._push_fallback(repos[name], request.fallback_branch) for name in failed_pushes
        ])
        unpushed = []
        for name, outcome in zip(failed_pushes, fallback_outcomes):
            if not outcome.ok:
                logger.error(f"push to '{request.fallback_branch}' failed for {name}: {outcome.error}")
                unpushed.append(name)

        error = PushError(
            failed_pushes,
            request.fallback_branch,
            self.settings.default_branch,
            unpushed=unpushed,
            failures={name: _describe(e) for name, e in failures.items()},
        )
        if failures:
            raise error from next(iter(failures.values()))
        raise error

    async def _apply_to_repo(self, repo: GitRepo, mapping: RepoMapping, staged: PatchSet) -> None:
        await repo.refresh()
        for hub_path, repo_path in mapping:
            patch = translate(staged, hub_path, repo_path)
            if patch.is_empty:
                continue
            try:
                await repo.apply(patch)
            except GitCommandError as e:
                logger.error(f"failed to apply diff in {repo.repo_name}:\n{e.stderr}\n")
                raise ApplyError(repo.repo_name) from e

    async def _plan_commit(
        self,
        repo: GitRepo,
        mapping: RepoMapping,
        request: LandRequest,
        revision_range: str,
        operator: str | None,
    ) -> _CommitPlan | None:
        if await repo.workdir_is_clean():
            return None

        paths = mapping.hub_paths()
        squash_author = await pick_squash_author(self.hub, revision_range, paths)
        authors = await get_authors(self.hub, revision_range, paths)
        author = squash_author or operator
        message = build_message(request.message_for(repo.repo_name), authors, author, operator)
        return _CommitPlan(repo=repo, author=author, message=message)

    async def _commit_and_push(self, plan: _CommitPlan, request: LandRequest) -> LandedCommit:
        repo = plan.repo
        await repo.git("add", "--all")
        commit_args = ["commit", f"--message={plan.message}"]
        if plan.author:
            commit_args.insert(1, f"--author={plan.author}")
        await repo.git(*commit_args)

        try:
            await repo.git("push", "origin", self.settings.default_branch)
        except GitCommandError as e:
            logger.warning(f"push to {self.settings.default_branch} failed for {repo.repo_name}")
            raise PushError([repo.repo_name], request.fallback_branch, self.settings.default_branch) from e

        return LandedCommit(sha=await repo.head_sha())

    async def _push_fallback(self, repo: GitRepo, fallback_branch: str) -> None:
        await repo.git("checkout", "-b", fallback_branch)
        await repo.git("push", "origin", fallback_branch)
        logger.info(f"Pushed {repo.repo_name} to fallback branch '{fallback_branch}'")

    async def operator_identity(self) -> str | None:
        return self.settings.operator_identity or await self.hub.user_identity()


def _describe(error: BaseException) -> str:
    """First line of an error's message, or its type when it has none."""
    lines = str(error).strip().splitlines()
    return lines[0] if lines else type(error).__name__
