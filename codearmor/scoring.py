"""
Security Score Aggregator - collapses a findings list into one 0-100 score.

Pure and order-independent: penalties are summed (every penalty is a multiple
of 0.5, so float addition is exact), and the hard clamp depends only on
whether some finding qualifies.
"""

import math
import re

from .models import (
    Certainty, Finding, FindingCategory, SecurityScoreResult, SecurityStatus, Severity,
)


SEVERITY_PENALTY = {
    Severity.HIGH: 30,
    Severity.MEDIUM: 15,
    Severity.LOW: 5,
}

CRITICAL_CAP = 45

SECRET_TITLE = re.compile(r"secret|key", re.IGNORECASE)

STATUS_THRESHOLDS = (
    (80, SecurityStatus.SECURE),
    (50, SecurityStatus.NEEDS_ATTENTION),
)


def finding_penalty(finding: Finding) -> float:
    penalty = SEVERITY_PENALTY.get(finding.severity, 0)
    if finding.certainty != Certainty.DEFINITE:
        penalty = penalty / 2
    return penalty


def is_critical_signal(finding: Finding) -> bool:
    """Definite HIGH findings and leaked secrets force the score down.

    A secret is matched by its category tag or by a secret/key title.
    """
    if finding.severity == Severity.HIGH and finding.certainty == Certainty.DEFINITE:
        return True
    if finding.category == FindingCategory.SECRET:
        return True
    return bool(SECRET_TITLE.search(finding.title or ""))


def status_for(score: int) -> SecurityStatus:
    for threshold, status in STATUS_THRESHOLDS:
        if score >= threshold:
            return status
    return SecurityStatus.CRITICAL


def calculate_security_score(findings: list[Finding]) -> SecurityScoreResult:
    score = 100.0 - sum(finding_penalty(f) for f in findings)

    if any(is_critical_signal(f) for f in findings):
        score = min(score, CRITICAL_CAP)

    score = max(0.0, score)
    # Half-up rounding; round() would send 92.5 to 92.
    final = int(math.floor(score + 0.5))
    return SecurityScoreResult(score=final, status=status_for(final))


def summarize_findings(findings: list[Finding]) -> dict[str, int]:
    """Counts per severity and per certainty, for history rows and badges."""
    summary = {"high": 0, "medium": 0, "low": 0, "definite": 0, "potential": 0}
    for f in findings:
        summary[f.severity.value.lower()] += 1
        if f.is_definite:
            summary["definite"] += 1
        else:
            summary["potential"] += 1
    return summary
