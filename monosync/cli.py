"""monosync CLI — import and land changes between a hub repo and its mapped repos."""

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from monosync import __version__
from monosync.errors import MonosyncError

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log every git command")
def main(verbose: bool):
    """monosync — keep hub subdirectories in sync with external repos.

    The hub's `.monosyncrc.json` maps hub directories to paths in external
    repos. `import` brings a branch of an external repo into the hub;
    `land` pushes a hub branch to the hub and every mapped repo.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    if not verbose:
        logging.getLogger("git").setLevel(logging.WARNING)


def _run(coro):
    """Run an operation, turning user-facing errors into a message and exit code 1."""
    try:
        return asyncio.run(coro)
    except MonosyncError as e:
        console.print(f"\n[red]Error:[/] {e}")
        sys.exit(1)


def _hub(hub_repo: str, settings_path: str | None):
    from monosync.settings import load_settings
    from monosync.sync.hub import Hub

    return Hub(hub_repo, load_settings(settings_path))


settings_option = click.option(
    "--settings",
    "settings_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML settings file (clone_dir, default_branch, remote_url_template, operator_identity)",
)


# ── Import ───────────────────────────────────────────────────────────


@main.command(name="import")
@click.argument("hub_repo")
@click.argument("base_repo")
@click.argument("head_branch")
@click.option("--message", "-m", required=True, help="Commit message for the hub commit")
@click.option("--new-branch", "-b", required=True, help="Hub branch to create and push")
@click.option("--head-repo", default=None, help="Fork that HEAD_BRANCH lives in, if not BASE_REPO")
@settings_option
def import_(
    hub_repo: str,
    base_repo: str,
    head_branch: str,
    message: str,
    new_branch: str,
    head_repo: str | None,
    settings_path: str | None,
):
    """Import HEAD_BRANCH of BASE_REPO into a new branch of HUB_REPO."""
    from monosync.sync.importer import ImportRequest

    console.print(f"\n[bold blue]monosync[/] — Importing {head_repo or base_repo}:{head_branch}\n")

    hub = _hub(hub_repo, settings_path)
    _run(hub.import_branch(ImportRequest(
        base_repo_name=base_repo,
        head_branch=head_branch,
        message=message,
        new_branch=new_branch,
        head_repo_name=head_repo,
    )))

    console.print(f"[green]Pushed[/] {hub_repo}:{new_branch}")


# ── Land ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("hub_repo")
@click.argument("head_branch")
@click.option("--message", "-m", required=True, help="Commit message used for every repo")
@click.option(
    "--repo-message",
    multiple=True,
    metavar="REPO=MESSAGE",
    help="Commit message override for one repo (repeatable)",
)
@click.option("--fallback-branch", required=True, help="Branch to push to when the default branch rejects the push")
@click.option("--head-repo", default=None, help="Fork that HEAD_BRANCH lives in, if not HUB_REPO")
@settings_option
def land(
    hub_repo: str,
    head_branch: str,
    message: str,
    repo_message: tuple,
    fallback_branch: str,
    head_repo: str | None,
    settings_path: str | None,
):
    """Land HEAD_BRANCH on HUB_REPO and on every repo mapped to the changed paths."""
    from monosync.sync.lander import GENERIC_MESSAGE, LandRequest

    commit_messages = {GENERIC_MESSAGE: message}
    for item in repo_message:
        repo_name, sep, text = item.partition("=")
        if not sep or not repo_name or not text:
            raise click.BadParameter(f"expected REPO=MESSAGE, got '{item}'", param_hint="--repo-message")
        commit_messages[repo_name] = text

    console.print(f"\n[bold blue]monosync[/] — Landing: {head_branch}\n")

    hub = _hub(hub_repo, settings_path)
    landed = _run(hub.land(LandRequest(
        commit_messages=commit_messages,
        fallback_branch=fallback_branch,
        head_branch=head_branch,
        head_repo_name=head_repo,
    )))

    if not landed:
        console.print("[yellow]Nothing to land.[/]")
        return

    table = Table(title=f"Landed ({len(landed)} repos)")
    table.add_column("Repo", style="cyan")
    table.add_column("Commit", style="green")
    for repo_name, commit in sorted(landed.items()):
        table.add_row(repo_name, commit.sha)
    console.print(table)


# ── Config ───────────────────────────────────────────────────────────


@main.command(name="check-config")
@click.argument("hub_repo")
@click.option("--revision", "-r", default=None, help="Hub revision to read (default: latest default branch)")
@settings_option
def check_config(hub_repo: str, revision: str | None, settings_path: str | None):
    """Validate HUB_REPO's mapping document and print the mapping."""
    hub = _hub(hub_repo, settings_path)
    config = _run(hub.check_config(revision))

    if not config.mapping:
        console.print("[yellow]Mapping is empty.[/]")
        return

    table = Table(title="Mapping")
    table.add_column("Repo", style="cyan")
    table.add_column("Hub path")
    table.add_column("Repo path")
    for repo_name, mapping in config.mapping.items():
        for hub_path, repo_path in mapping:
            table.add_row(repo_name, hub_path or "/", repo_path or "/")
    console.print(table)
    console.print("\n[green]Valid![/]")


if __name__ == "__main__":
    main()
