"""Mapping configuration — which hub directories mirror which external repos.

The document lives at the hub root and is always read from a committed
revision, never from the working copy and never cached, so a land applies
the mapping that ships with the change being landed::

    {
      "mapping": {
        "owner/child-repo": {"libs/child": ""},
        "owner/other-repo": {"tools/cli": "packages/cli"}
      }
    }

Keys are hub paths, values are paths inside the external repo. The empty
string is the repository root; leading and trailing slashes are ignored.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

from git import GitCommandError

from monosync.errors import ConfigError

if TYPE_CHECKING:
    from monosync.utils.git_ops import GitRepo

logger = logging.getLogger(__name__)

CONFIG_FILE = ".monosyncrc.json"


@dataclass(frozen=True)
class RepoMapping:
    """Ordered ``(hub_path, repo_path)`` pairs for one external repo."""

    entries: tuple[tuple[str, str], ...] = ()

    @classmethod
    def root(cls) -> RepoMapping:
        """The whole repository mapped onto itself."""
        return cls((("", ""),))

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def hub_paths(self) -> list[str]:
        """Hub paths for scoping ``git log`` on the hub; empty when the hub root is mapped."""
        paths = [hub_path for hub_path, _ in self.entries]
        return [] if "" in paths else paths

    def repo_paths(self) -> list[str]:
        """Repo paths for scoping ``git log`` on the external repo; empty when its root is mapped."""
        paths = [repo_path for _, repo_path in self.entries]
        return [] if "" in paths else paths


@dataclass(frozen=True)
class SyncConfig:
    """Validated mapping of repo name to :class:`RepoMapping`."""

    mapping: dict[str, RepoMapping] = field(default_factory=dict)

    def mapping_for(self, repo_name: str) -> RepoMapping:
        return self.mapping.get(repo_name, RepoMapping())

    def mapped_repos(self) -> list[str]:
        """Repos with at least one mapping entry."""
        return [name for name, mapping in self.mapping.items() if mapping]


def normalize_path(path: str) -> str:
    return path.strip("/")


async def get_config(repo: GitRepo, revision: str = "HEAD") -> dict | None:
    """Read the raw mapping document at ``revision`` of ``repo``.

    Returns None (after logging why) when the file is missing or not valid JSON.
    """
    try:
        raw = await repo.show(revision, CONFIG_FILE)
    except GitCommandError as e:
        logger.warning(f"error reading config at {revision} of {repo.repo_name}: {e.stderr.strip()}")
        return None

    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"error reading config at {revision} of {repo.repo_name}: {e}")
        return None


def validate_config(data) -> SyncConfig:
    """Validate and normalize a raw mapping document.

    Raises:
        ConfigError: listing every problem found.
    """
    if not isinstance(data, dict) or not isinstance(data.get("mapping"), dict):
        raise ConfigError(f"Missing or invalid `{CONFIG_FILE}` in hub repo")

    issues: list[str] = []
    mapping: dict[str, RepoMapping] = {}

    for repo_name, entries in data["mapping"].items():
        if not isinstance(entries, dict):
            issues.append(f"mapping.{repo_name}: expected an object of hub path -> repo path")
            continue

        pairs: list[tuple[str, str]] = []
        seen: set[str] = set()
        for hub_path, repo_path in entries.items():
            if not isinstance(repo_path, str):
                issues.append(f"mapping.{repo_name}.{hub_path}: expected a string path")
                continue

            hub_path, repo_path = normalize_path(hub_path), normalize_path(repo_path)
            for path in (hub_path, repo_path):
                problem = _subpath_problem(path)
                if problem:
                    issues.append(f"mapping.{repo_name}: '{path}' {problem}")

            if hub_path in seen:
                issues.append(f"mapping.{repo_name}: hub path '{hub_path}' is mapped more than once")
            seen.add(hub_path)
            pairs.append((hub_path, repo_path))

        mapping[repo_name] = RepoMapping(tuple(pairs))

    if issues:
        raise ConfigError(f"Invalid `{CONFIG_FILE}` in hub repo", issues)

    return SyncConfig(mapping)


def _subpath_problem(path: str) -> str:
    if not path:
        return ""
    if "\\" in path:
        return "must use '/' as the separator"
    segments = path.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        return "must not contain empty, '.' or '..' segments"
    return ""
