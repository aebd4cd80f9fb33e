"""GitHub access through PyGithub: PR metadata, changed files, closed-PR history."""

from dataclasses import dataclass
from itertools import islice

import requests
from github import Auth, Github, GithubException, UnknownObjectException

from .errors import UpstreamError, UpstreamTimeout
from .models import ChangedFile, HistoricalPR


@dataclass(frozen=True)
class PullRequestDetails:
    number: int
    title: str
    body: str = ""
    state: str = "open"
    head_sha: str = ""
    base_ref: str = ""


def is_repository_target(path: str) -> bool:
    """Files pulled into a repository scan."""
    return (
        path in ("app/page.tsx", "middleware.ts", ".env.example")
        or (path.startswith("app/api/") and path.endswith("route.ts"))
        or (path.startswith("supabase/") and path.endswith(".sql"))
    )


class GitHubSource:
    """Thin wrapper that maps PyGithub objects to engine models."""

    def __init__(self, token: str = "", timeout: float = 30.0, client: Github | None = None):
        self.timeout = timeout
        self.client = client or Github(
            auth=Auth.Token(token) if token else None, timeout=int(timeout), per_page=50
        )

    def _guard(self, what: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except requests.Timeout as exc:
            raise UpstreamTimeout(f"GitHub timed out while {what}: {exc}", service="GitHub") from exc
        except GithubException as exc:
            raise UpstreamError(
                f"GitHub API error while {what}: {exc.status} {exc.data}",
                service="GitHub",
                status_code=exc.status,
            ) from exc
        except requests.RequestException as exc:
            raise UpstreamError(f"GitHub request failed while {what}: {exc}", service="GitHub") from exc

    def get_pull(self, owner: str, repo: str, number: int) -> PullRequestDetails:
        def _fetch():
            pr = self.client.get_repo(f"{owner}/{repo}").get_pull(number)
            return PullRequestDetails(
                number=pr.number,
                title=pr.title or "",
                body=pr.body or "",
                state=pr.state or "",
                head_sha=pr.head.sha if pr.head else "",
                base_ref=pr.base.ref if pr.base else "",
            )

        return self._guard(f"fetching PR #{number}", _fetch)

    def get_pull_files(self, owner: str, repo: str, number: int) -> list[ChangedFile]:
        def _fetch():
            pr = self.client.get_repo(f"{owner}/{repo}").get_pull(number)
            return [
                ChangedFile(
                    filename=f.filename,
                    status=f.status or "modified",
                    additions=f.additions or 0,
                    deletions=f.deletions or 0,
                    changes=f.changes or 0,
                    patch=f.patch,
                )
                for f in pr.get_files()
            ]

        return self._guard(f"fetching files of PR #{number}", _fetch)

    def list_closed_pulls(self, owner: str, repo: str, limit: int = 50) -> list[HistoricalPR]:
        """Most recently updated closed PRs, newest first."""
        def _fetch():
            pulls = self.client.get_repo(f"{owner}/{repo}").get_pulls(
                state="closed", sort="updated", direction="desc"
            )
            return [
                HistoricalPR(
                    number=pr.number,
                    title=pr.title or "",
                    body=pr.body or "",
                    merged_at=pr.merged_at,
                    closed_at=pr.closed_at,
                )
                for pr in islice(pulls, limit)
            ]

        return self._guard("listing closed PRs", _fetch)

    def collect_repository_files(self, owner: str, repo: str, branch: str = "main") -> dict[str, str]:
        """Fetch the contents of the scan targets on ``branch`` (path -> text)."""
        repository = self._guard("opening repository", self.client.get_repo, f"{owner}/{repo}")
        tree = self._guard(
            f"reading tree of {branch}", repository.get_git_tree, branch, recursive=True
        )

        paths = []
        for item in tree.tree:
            if item.type == "blob" and is_repository_target(item.path) and item.path not in paths:
                paths.append(item.path)

        files = {}
        for path in paths:
            try:
                content = self._guard(f"reading {path}", repository.get_contents, path, ref=branch)
            except UpstreamError as exc:
                if isinstance(exc.__cause__, UnknownObjectException):
                    continue
                raise
            if isinstance(content, list) or content.type != "file":
                continue
            files[path] = content.decoded_content.decode("utf-8", errors="replace")
        return files
