"""
Analysis orchestration: one response object per request.

    files -> RiskDeltaCalculator ------------------------------+
    files + history -> RegressionDetector  (parallel with) ----+-> PRAnalysisResult
    files -> FindingClassifier -> calculate_security_score ----+

Input is validated and the caller is rate-limited before any outbound call.
"""

import concurrent.futures

from . import annotations
from .classifier import FindingClassifier
from .errors import InvalidRequestError
from .models import ChangedFile, CodeAnalysisResult, PRAnalysisResult
from .rate_limit import RateLimiter, get_rate_limiter
from .regression import RegressionDetector
from .risk_delta import RiskDeltaCalculator
from .scoring import calculate_security_score
from .validation import require_pull_request, sanitize_code, validate_owner_repo


class PRAnalysisEngine:
    """Runs PR, snippet and repository analyses against injected collaborators."""

    def __init__(
        self,
        source,
        classifier: FindingClassifier,
        risk_calculator: RiskDeltaCalculator | None = None,
        regression_detector: RegressionDetector | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.source = source
        self.classifier = classifier
        self.risk_calculator = risk_calculator or RiskDeltaCalculator()
        self.regression_detector = regression_detector or (
            RegressionDetector(source) if source is not None else None
        )
        self.rate_limiter = rate_limiter if rate_limiter is not None else get_rate_limiter()

    def _limit(self, identifier: str, operation: str) -> None:
        self.rate_limiter.enforce(identifier, operation)

    def analyze_pull_request(
        self, owner: str, repo: str, pr_number: int, identifier: str = "anonymous"
    ) -> PRAnalysisResult:
        require_pull_request(owner, repo, pr_number)
        self._limit(identifier, "pr")

        # Metadata and file list are independent; fetch them together.
        with concurrent.futures.ThreadPoolExecutor(max_workers=2) as ex:
            details_future = ex.submit(self.source.get_pull, owner, repo, pr_number)
            files_future = ex.submit(self.source.get_pull_files, owner, repo, pr_number)
            details = details_future.result()
            files = files_future.result()

        return self.analyze_files(owner, repo, pr_number, files, title=details.title)

    def analyze_files(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        files: list[ChangedFile],
        title: str = "",
        detect_regressions: bool = True,
    ) -> PRAnalysisResult:
        """Score an already-fetched change set."""
        risk_delta = self.risk_calculator.calculate(files)

        run_regressions = detect_regressions and self.regression_detector is not None
        with concurrent.futures.ThreadPoolExecutor(max_workers=2) as ex:
            regressions_future = (
                ex.submit(self.regression_detector.detect, owner, repo, pr_number, files)
                if run_regressions else None
            )
            classification_future = ex.submit(self.classifier.classify_pull_request, files)
            classification = classification_future.result()
            regressions = regressions_future.result() if regressions_future else []

        if classification.truncated:
            annotations.notice(f"PR #{pr_number} diff was truncated before classification")

        return PRAnalysisResult(
            owner=owner,
            repo=repo,
            pr_number=pr_number,
            title=title,
            risk_delta=risk_delta,
            regressions=regressions,
            findings=classification.findings,
            assumptions=classification.assumptions,
            security_score=calculate_security_score(classification.findings),
            truncated=classification.truncated,
        )

    def analyze_snippet(self, code: str, identifier: str = "anonymous") -> CodeAnalysisResult:
        if not isinstance(code, str) or not code.strip():
            raise InvalidRequestError("Code snippet is required")
        self._limit(identifier, "snippet")

        code, truncated = sanitize_code(code)
        classification = self.classifier.classify_snippet(code, truncated=truncated)
        return CodeAnalysisResult(
            target="snippet",
            findings=classification.findings,
            assumptions=classification.assumptions,
            security_score=calculate_security_score(classification.findings),
            truncated=classification.truncated,
        )

    def analyze_repository(
        self, owner: str, repo: str, branch: str = "main", identifier: str = "anonymous"
    ) -> CodeAnalysisResult:
        if not validate_owner_repo(owner, repo):
            raise InvalidRequestError("Invalid owner or repository name.")
        self._limit(identifier, "repo")

        contents = self.source.collect_repository_files(owner, repo, branch)
        if not contents:
            raise InvalidRequestError(
                f"No analyzable files found in {owner}/{repo} on branch {branch}"
            )

        classification = self.classifier.classify_repository(contents)
        return CodeAnalysisResult(
            target=f"{owner}/{repo}@{branch}",
            files=list(contents),
            findings=classification.findings,
            assumptions=classification.assumptions,
            security_score=calculate_security_score(classification.findings),
            truncated=classification.truncated,
        )
