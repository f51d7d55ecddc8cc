"""User-facing errors raised by import and land operations."""

from __future__ import annotations


class MonosyncError(Exception):
    """Base class for errors whose message is meant for the end user."""


class ConfigError(MonosyncError):
    """The hub's mapping document is missing, unparseable, or invalid."""

    def __init__(self, message: str, issues: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.issues = list(issues or [])

    def __str__(self) -> str:
        if not self.issues:
            return self.message
        details = "\n".join(f"- {issue}" for issue in self.issues)
        return f"{self.message}:\n{details}"


class MappingError(MonosyncError):
    """No mapping entry exists for the repo being imported."""

    def __init__(self, repo_name: str, config_file: str):
        super().__init__(f"No mapping found for `{repo_name}` in hub repo's `{config_file}`")
        self.repo_name = repo_name


class ApplyError(MonosyncError):
    """A translated patch did not apply cleanly to a repo's working copy."""

    def __init__(self, repo_name: str):
        super().__init__(
            f"Failed to apply the change to `{repo_name}`. "
            "Nothing was committed; rebase the change and try again."
        )
        self.repo_name = repo_name


class PushError(MonosyncError):
    """Commits were made but could not be pushed to the default branch.

    The commits are preserved on ``fallback_branch`` of each affected repo,
    except for the repos in ``unpushed``, whose fallback push failed too.
    ``failures`` maps repos that failed to land for any other reason to a
    short description of the error.
    """

    def __init__(
        self,
        repos: list[str],
        fallback_branch: str,
        default_branch: str = "master",
        unpushed: list[str] | None = None,
        failures: dict[str, str] | None = None,
    ):
        self.repos = list(repos)
        self.fallback_branch = fallback_branch
        self.default_branch = default_branch
        self.unpushed = list(unpushed or [])
        self.failures = dict(failures or {})

        parts = [f"Unable to push to `{default_branch}` for:\n{_listing(self.repos)}"]
        if any(name not in self.unpushed for name in self.repos):
            parts.append(
                f"Pushed to `{fallback_branch}` branch instead. "
                f"**Please manually merge the branch(es) into `{default_branch}` ASAP**."
            )
        if self.unpushed:
            parts.append(
                f"Pushing to `{fallback_branch}` failed as well for:\n{_listing(self.unpushed)}\n"
                "Their commits were not saved anywhere; land the change again for them."
            )
        if self.failures:
            failed = "\n".join(f"- {name}: {reason}" for name, reason in self.failures.items())
            parts.append(f"These repos failed to land:\n{failed}")
        parts.append(
            "*NOTE: to prevent this, you likely need to adjust your branch protection "
            "rules or ensure the token account has admin access to your repos.*"
        )
        super().__init__("\n\n".join(parts))


def _listing(names: list[str]) -> str:
    return "\n".join(f"- {name}" for name in names)
