"""Input validation for owner/repo/PR identifiers and code snippets."""

import re

from .errors import InvalidRequestError


_GITHUB_URL = re.compile(r"^https?://github\.com/([a-zA-Z0-9_-]+)/([a-zA-Z0-9_.-]+)/?$")
_OWNER = re.compile(r"^[a-zA-Z0-9_-]+$")
_REPO = re.compile(r"^[a-zA-Z0-9_.-]+$")

MAX_SNIPPET_LENGTH = 50000


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Return (owner, repo) for a github.com repository URL, else None."""
    match = _GITHUB_URL.match(url or "")
    if not match:
        return None
    repo = match.group(2)
    if repo.endswith(".git"):
        repo = repo[:-4]
    return match.group(1), repo


def validate_owner_repo(owner: str, repo: str) -> bool:
    return bool(
        owner and repo
        and len(owner) <= 39
        and len(repo) <= 100
        and _OWNER.match(owner)
        and _REPO.match(repo)
    )


def validate_pr_number(pr_number) -> bool:
    return (
        isinstance(pr_number, int)
        and not isinstance(pr_number, bool)
        and 0 < pr_number < 1000000
    )


def require_pull_request(owner: str, repo: str, pr_number) -> None:
    if not owner or not repo or not pr_number:
        raise InvalidRequestError("Missing required fields: owner, repo, pr_number")
    if not validate_owner_repo(owner, repo) or not validate_pr_number(pr_number):
        raise InvalidRequestError("Invalid owner, repository name, or PR number.")


def sanitize_code(code) -> tuple[str, bool]:
    """Clamp a snippet to MAX_SNIPPET_LENGTH; returns (code, truncated)."""
    if not isinstance(code, str):
        return "", False
    if len(code) > MAX_SNIPPET_LENGTH:
        return code[:MAX_SNIPPET_LENGTH], True
    return code, False
