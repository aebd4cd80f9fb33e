"""
Regression Detector - flags PRs that remove lines a past security fix added.

Protocol:
  1. Fetch the most recently updated closed PRs (history window N).
  2. Keep the ones whose title/body mention a security keyword (permissive).
  3. Cap to the most recent K security PRs to bound external calls.
  4. For each kept PR, fetch its files concurrently and compare every path it
     shares with the current PR: a trimmed line the fix added (> 10 chars)
     that the current PR removes verbatim is a regression.

A failure while fetching history, or while fetching one PR's files, never
aborts detection: the step is logged and skipped.
"""

import concurrent.futures
from typing import Protocol

from . import annotations
from .models import ChangedFile, HistoricalPR, SecurityRegression, Severity
from .patterns import added_lines, removed_lines


SECURITY_KEYWORDS = ("security", "fix", "vulnerability", "cve", "security fix")

# Shorter matches are mostly braces, blank-ish lines and `return;`.
MIN_MATCH_LENGTH = 10


class PullRequestSource(Protocol):
    def list_closed_pulls(self, owner: str, repo: str, limit: int) -> list[HistoricalPR]:
        ...

    def get_pull_files(self, owner: str, repo: str, number: int) -> list[ChangedFile]:
        ...


def is_security_pr(pr: HistoricalPR) -> bool:
    text = f"{pr.title or ''}\n{pr.body or ''}".lower()
    return any(keyword in text for keyword in SECURITY_KEYWORDS)


def _strip(lines: list[str]) -> set[str]:
    return {line[1:].strip() for line in lines}


def reverts_fix(fix_patch: str | None, current_patch: str | None) -> bool:
    """True if the current patch removes a non-trivial line the fix added."""
    if not fix_patch or not current_patch:
        return False
    fix_added = _strip(added_lines(fix_patch))
    now_removed = _strip(removed_lines(current_patch))
    return any(len(line) > MIN_MATCH_LENGTH for line in fix_added & now_removed)


class RegressionDetector:
    """Compares a PR's removals against historical security fixes."""

    def __init__(
        self,
        source: PullRequestSource,
        history_limit: int = 50,
        max_security_prs: int = 20,
        max_workers: int = 8,
    ):
        self.source = source
        self.history_limit = history_limit
        self.max_security_prs = max_security_prs
        self.max_workers = max_workers

    def detect(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        current_files: list[ChangedFile],
    ) -> list[SecurityRegression]:
        try:
            history = self.source.list_closed_pulls(owner, repo, self.history_limit)
        except Exception as e:
            annotations.warning(f"Error detecting regressions for {owner}/{repo}: {e}")
            return []

        security_prs = [
            pr for pr in history
            if pr.number != pr_number and is_security_pr(pr)
        ][:self.max_security_prs]

        if not security_prs:
            return []

        current_by_path = {f.filename: f for f in current_files if f.patch}
        if not current_by_path:
            return []

        fix_files = self._fetch_fix_files(owner, repo, security_prs)

        regressions = []
        for pr in security_prs:
            files = fix_files.get(pr.number)
            if files is None:
                continue
            regressions.extend(self._compare(pr, files, current_by_path))
        return regressions

    def _fetch_fix_files(
        self, owner: str, repo: str, prs: list[HistoricalPR]
    ) -> dict[int, list[ChangedFile]]:
        """Fetch each fix PR's files in parallel; failed PRs are left out."""
        results: dict[int, list[ChangedFile]] = {}
        workers = max(1, min(len(prs), self.max_workers))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
            future_to_pr = {
                ex.submit(self.source.get_pull_files, owner, repo, pr.number): pr
                for pr in prs
            }
            for future in concurrent.futures.as_completed(future_to_pr):
                pr = future_to_pr[future]
                try:
                    results[pr.number] = future.result()
                except Exception as e:
                    annotations.warning(f"Error analyzing historical PR #{pr.number}: {e}")
        return results

    def _compare(
        self,
        pr: HistoricalPR,
        fix_files: list[ChangedFile],
        current_by_path: dict[str, ChangedFile],
    ) -> list[SecurityRegression]:
        found = []
        seen: set[str] = set()
        for fix_file in fix_files:
            current = current_by_path.get(fix_file.filename)
            if current is None or fix_file.filename in seen:
                continue
            if not reverts_fix(fix_file.patch, current.patch):
                continue
            seen.add(fix_file.filename)
            found.append(SecurityRegression(
                id=f"regression-{pr.number}-{current.filename}",
                title=f"Potential regression of security fix from PR #{pr.number}",
                description=(
                    f"This PR modifies {current.filename}, which was previously fixed in "
                    f"PR #{pr.number} ({pr.title}). Review carefully to ensure the "
                    f"security fix is not being reverted."
                ),
                original_fix_pr=pr.number,
                original_fix_date=pr.fix_date,
                reintroduced_in=current.filename,
                severity=Severity.HIGH,
            ))
        return found
