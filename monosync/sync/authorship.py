"""Authorship — who a squashed change is attributed to.

A squash commit is authored by the author of the earliest commit in the
range. Every other author, plus anyone credited through a
``Co-authored-by:`` trailer, is credited with a trailer on the squash
commit. The operator running the sync is never credited.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from monosync.utils.git_ops import GitRepo

CO_AUTHOR_PREFIX = "Co-authored-by: "


def log_range_args(revision_range: str, paths: Iterable[str] = ()) -> list[str]:
    """``git log`` args for the commits unique to the right side of ``revision_range``."""
    args = [revision_range, "--right-only"]
    # only credit authors of commits that touch the mapped paths
    scoped = [path for path in paths if path]
    if scoped:
        args += ["--", *scoped]
    return args


def collect_authors(commits: list[dict[str, str]]) -> list[str]:
    """Deduplicated ``Name <email>`` identities from authors and trailers, sorted."""
    authors: set[str] = set()
    for commit in commits:
        authors.add(f"{commit['author_name']} <{commit['author_email']}>")
        for line in commit.get("message", "").splitlines():
            if line.startswith(CO_AUTHOR_PREFIX):
                authors.add(line[len(CO_AUTHOR_PREFIX):].strip())
    return sorted(authors)


async def get_authors(repo: GitRepo, revision_range: str, paths: Iterable[str] = ()) -> list[str]:
    commits = await repo.log(
        log_range_args(revision_range, paths),
        {"author_name": "%an", "author_email": "%ae", "message": "%B"},
    )
    return collect_authors(commits)


async def pick_squash_author(repo: GitRepo, revision_range: str, paths: Iterable[str] = ()) -> str | None:
    """Author of the earliest commit in the range, or None if the range is empty."""
    commits = await repo.log(log_range_args(revision_range, paths), {"author": "%an <%ae>"})
    # git log lists newest first
    return commits[-1]["author"] if commits else None


def build_message(
    message: str,
    authors: Iterable[str],
    squash_author: str | None,
    operator_identity: str | None,
) -> str:
    trailers = "\n".join(
        f"{CO_AUTHOR_PREFIX}{author}"
        for author in authors
        if author != squash_author and author != operator_identity
    )
    return f"{message}\n\n{trailers}" if trailers else message
