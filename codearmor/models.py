"""Data models for the PR risk and regression engine."""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Certainty(str, Enum):
    DEFINITE = "Definite"
    POTENTIAL = "Potential"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class FindingCategory(str, Enum):
    SECRET = "secret"
    ACCESS_CONTROL = "access_control"
    INJECTION = "injection"
    OTHER = "other"


class SecurityStatus(str, Enum):
    SECURE = "secure"
    NEEDS_ATTENTION = "needs_attention"
    CRITICAL = "critical"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self][0]

    @property
    def emoji(self) -> str:
        return _STATUS_LABELS[self][1]


_STATUS_LABELS = {
    SecurityStatus.SECURE: ("Secure", "🟢"),
    SecurityStatus.NEEDS_ATTENTION: ("Needs Attention", "🟡"),
    SecurityStatus.CRITICAL: ("Critical", "🔴"),
}


# Checked in order; first hit wins.
_CATEGORY_KEYWORDS = [
    (FindingCategory.SECRET, re.compile(r"secret|key", re.IGNORECASE)),
    (FindingCategory.ACCESS_CONTROL, re.compile(
        r"auth|access.?control|permission|idor|privilege|authori[sz]", re.IGNORECASE)),
    (FindingCategory.INJECTION, re.compile(
        r"inject|xss|cross.?site|rce|remote code|eval|exec|command", re.IGNORECASE)),
]


def infer_category(title: str) -> FindingCategory:
    """Derive a category tag from a finding title when the model gave none."""
    for category, pattern in _CATEGORY_KEYWORDS:
        if pattern.search(title or ""):
            return category
    return FindingCategory.OTHER


@dataclass(frozen=True)
class ChangedFile:
    """One file of a pull request, as listed by the source host."""
    filename: str
    status: str = "modified"  # added | modified | removed | renamed
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangedFile":
        return cls(
            filename=data["filename"],
            status=data.get("status", "modified"),
            additions=int(data.get("additions", 0) or 0),
            deletions=int(data.get("deletions", 0) or 0),
            changes=int(data.get("changes", 0) or 0),
            patch=data.get("patch"),
        )


@dataclass(frozen=True)
class HistoricalPR:
    """Closed pull request summary used to find past security fixes."""
    number: int
    title: str
    body: str = ""
    merged_at: datetime | str | None = None
    closed_at: datetime | str | None = None

    @property
    def fix_date(self) -> str:
        value = self.merged_at or self.closed_at
        if isinstance(value, datetime):
            return value.isoformat()
        return value or ""


@dataclass
class RiskDelta:
    score: int = 0
    level: RiskLevel = RiskLevel.LOW
    reasons: list[str] = field(default_factory=list)
    changed_file_counts: dict[str, int] = field(
        default_factory=lambda: {"auth": 0, "database": 0, "api": 0, "config": 0}
    )

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "level": self.level.value,
            "reasons": list(self.reasons),
            "changed_file_counts": dict(self.changed_file_counts),
        }


@dataclass(frozen=True)
class SecurityRegression:
    id: str
    title: str
    description: str
    original_fix_pr: int
    original_fix_date: str
    reintroduced_in: str
    severity: Severity = Severity.HIGH

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "original_fix_pr": self.original_fix_pr,
            "original_fix_date": self.original_fix_date,
            "reintroduced_in": self.reintroduced_in,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class Finding:
    """A vulnerability reported by the classifier. Never mutated by the engine."""
    id: str
    title: str
    severity: Severity
    certainty: Certainty = Certainty.POTENTIAL
    description: str = ""
    file: str | None = None
    vulnerable_code: str | None = None
    fixed_code: str | None = None
    category: FindingCategory | None = None

    def __post_init__(self):
        if self.category is None:
            object.__setattr__(self, "category", infer_category(self.title))

    @property
    def is_definite(self) -> bool:
        return self.certainty == Certainty.DEFINITE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "severity": self.severity.value,
            "certainty": self.certainty.value,
            "description": self.description,
            "file": self.file,
            "vulnerable_code": self.vulnerable_code,
            "fixed_code": self.fixed_code,
            "category": self.category.value,
        }


@dataclass(frozen=True)
class SecurityScoreResult:
    score: int
    status: SecurityStatus

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "status": self.status.value,
            "label": self.status.label,
            "emoji": self.status.emoji,
        }


@dataclass
class ClassificationResult:
    findings: list[Finding] = field(default_factory=list)
    assumptions: list[str] = field(default_factory=list)
    truncated: bool = False


@dataclass
class PRAnalysisResult:
    """One response object per PR analysis request."""
    owner: str
    repo: str
    pr_number: int
    risk_delta: RiskDelta
    regressions: list[SecurityRegression]
    findings: list[Finding]
    assumptions: list[str]
    security_score: SecurityScoreResult
    title: str = ""
    truncated: bool = False

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "repo": self.repo,
            "pr_number": self.pr_number,
            "title": self.title,
            "risk_delta": self.risk_delta.to_dict(),
            "regressions": [r.to_dict() for r in self.regressions],
            "findings": [f.to_dict() for f in self.findings],
            "assumptions": list(self.assumptions),
            "security_score": self.security_score.to_dict(),
            "truncated": self.truncated,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


@dataclass
class CodeAnalysisResult:
    """Result of a snippet or repository scan (no diff, so no risk delta)."""
    target: str
    findings: list[Finding]
    assumptions: list[str]
    security_score: SecurityScoreResult
    files: list[str] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "files": list(self.files),
            "findings": [f.to_dict() for f in self.findings],
            "assumptions": list(self.assumptions),
            "security_score": self.security_score.to_dict(),
            "truncated": self.truncated,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: float
