"""Tests for squash authorship and co-author trailers."""

import asyncio
from pathlib import Path

from conftest import commit_all, write_files
from monosync.sync.authorship import (
    build_message,
    collect_authors,
    get_authors,
    log_range_args,
    pick_squash_author,
)
from monosync.utils.git_ops import GitRepo

ALICE = "Alice <alice@example.com>"
BOB = "Bob <bob@example.com>"
CAROL = "Carol <carol@example.com>"
OPERATOR = "Sync Operator <operator@example.com>"


# --- Messages ---


def test_collect_authors_dedupes_and_sorts():
    commits = [
        {"author_name": "Bob", "author_email": "bob@example.com", "message": "second"},
        {
            "author_name": "Alice",
            "author_email": "alice@example.com",
            "message": f"first\n\nCo-authored-by: {CAROL}\nCo-authored-by: {BOB}",
        },
        {"author_name": "Bob", "author_email": "bob@example.com", "message": "third"},
    ]
    assert collect_authors(commits) == [ALICE, BOB, CAROL]


def test_build_message_without_coauthors():
    assert build_message("Fix it", [ALICE], ALICE, OPERATOR) == "Fix it"
    assert build_message("Fix it", [], None, OPERATOR) == "Fix it"


def test_build_message_excludes_squash_author_and_operator():
    message = build_message("Fix it", [ALICE, BOB, CAROL, OPERATOR], ALICE, OPERATOR)
    assert message == f"Fix it\n\nCo-authored-by: {BOB}\nCo-authored-by: {CAROL}"


def test_log_range_args():
    assert log_range_args("main...feature") == ["main...feature", "--right-only"]
    assert log_range_args("a...b", ["", "libs/core"]) == ["a...b", "--right-only", "--", "libs/core"]


# --- From history ---


def _history(workspace):
    repo = workspace.create_repo("foo/authors")
    repo.git.checkout("-b", "feature")
    write_files(repo, {"docs/guide.md": "guide"})
    commit_all(repo, "write guide", author=ALICE)
    write_files(repo, {"src/app.py": "print('hi')\n"})
    commit_all(repo, f"add app\n\nCo-authored-by: {CAROL}", author=BOB)
    repo.git.checkout("main")

    git_repo = GitRepo("foo/authors", workspace.settings)
    git_repo.local_path = Path(repo.working_dir)
    return git_repo


def test_squash_author_is_earliest_commit_author(workspace):
    repo = _history(workspace)
    assert asyncio.run(pick_squash_author(repo, "main...feature")) == ALICE


def test_squash_author_of_empty_range(workspace):
    repo = _history(workspace)
    assert asyncio.run(pick_squash_author(repo, "feature...main")) is None


def test_authors_include_trailers(workspace):
    repo = _history(workspace)
    assert asyncio.run(get_authors(repo, "main...feature")) == [ALICE, BOB, CAROL]


def test_authors_scoped_to_paths(workspace):
    repo = _history(workspace)
    assert asyncio.run(get_authors(repo, "main...feature", ["src"])) == [BOB, CAROL]
    assert asyncio.run(pick_squash_author(repo, "main...feature", ["src"])) == BOB
