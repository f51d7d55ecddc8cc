"""Hub — the entry point binding import and land to one hub repo."""

from __future__ import annotations

from monosync.settings import SyncSettings
from monosync.sync.config import SyncConfig, get_config, validate_config
from monosync.sync.importer import ImportEngine, ImportRequest
from monosync.sync.lander import LandedCommit, LandEngine, LandRequest
from monosync.sync.queue import OperationQueue
from monosync.utils.git_ops import GitRepo


class Hub:
    """Serialized import/land operations against one hub repo.

    Calls on the same instance run one at a time in submission order; calls
    on different instances are independent. Create one instance per hub and
    share it.

    Usage::

        hub = Hub("acme/monorepo", load_settings("monosync.yaml"))
        landed = await hub.land(LandRequest(
            commit_messages={"generic": "Add retry support"},
            fallback_branch="monosync/land-1234",
            head_branch="feature/retry",
        ))
    """

    def __init__(self, name: str, settings: SyncSettings | None = None):
        self.name = name
        self.settings = settings or SyncSettings()
        self.repo = GitRepo(name, self.settings)
        self.queue = OperationQueue()
        self._importer = ImportEngine(self.repo, self.settings)
        self._lander = LandEngine(self.repo, self.settings)

    async def import_branch(self, request: ImportRequest) -> None:
        """Import an external branch into a new hub branch."""
        await self.queue.run(self._importer.run, request)

    async def land(self, request: LandRequest) -> dict[str, LandedCommit]:
        """Land a hub branch on the hub and every mapped repo."""
        return await self.queue.run(self._lander.run, request)

    async def check_config(self, revision: str | None = None) -> SyncConfig:
        """Validate the mapping at ``revision`` (default: latest default branch)."""
        return await self.queue.run(self._check_config, revision)

    async def _check_config(self, revision: str | None) -> SyncConfig:
        await self.repo.refresh()
        return validate_config(await get_config(self.repo, revision or "HEAD"))
