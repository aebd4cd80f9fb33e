"""
Risk Delta Calculator - aggregates pattern matches over a PR's changed files
into a bounded 0-100 score, a discrete level, and the reasons behind it.

Category weights apply once per file per category. Dangerous-pattern weights
apply once per PR, however many files trigger them.
"""

import re
from pathlib import Path
from typing import Any

import yaml

from . import annotations
from .models import ChangedFile, RiskDelta, RiskLevel
from .patterns import CATEGORIES, DANGEROUS, PatternMatcher


BASELINE_REASON = "Standard code changes with no high-risk patterns detected"


class RiskDeltaCalculator:
    """Scores the incremental risk of a change set."""

    CATEGORY_WEIGHTS = {
        "auth": 15,
        "database": 12,
        "api": 10,
        "config": 20,
    }

    DANGEROUS_WEIGHTS = {
        "unsafe_execution": 25,
        "secret_exposure": 30,
    }

    REASONS = {
        "auth": "Authentication logic modified",
        "database": "Database access patterns changed",
        "api": "Public API endpoints modified",
        "config": "Configuration or secrets updated",
        "unsafe_execution": "Potentially unsafe code patterns introduced",
        "secret_exposure": "Potential secrets exposure detected",
    }

    DEFAULT_LEVEL_THRESHOLDS = {
        "high": 60,
        "medium": 30,
    }

    def __init__(self, policy_path: str | Path | None = None):
        """Initialize calculator with optional YAML policy overrides."""
        # Mutable copies of defaults so policy overrides don't leak across runs
        self.category_weights = dict(self.CATEGORY_WEIGHTS)
        self.dangerous_weights = dict(self.DANGEROUS_WEIGHTS)
        self.level_thresholds = dict(self.DEFAULT_LEVEL_THRESHOLDS)
        category_patterns: dict[str, str] = {}

        if policy_path:
            category_patterns = self._load_policy(Path(policy_path))

        self.matcher = PatternMatcher(category_patterns or None)

    def calculate(self, files: list[ChangedFile]) -> RiskDelta:
        """Score a PR's file list. Never raises for well-formed input."""
        counts = {name: 0 for name in CATEGORIES}
        reasons: list[str] = []
        score = 0
        fired: set[str] = set()

        def add_reason(key: str) -> None:
            reason = self.REASONS[key]
            if reason not in reasons:
                reasons.append(reason)

        for file in files:
            match = self.matcher.match(file)

            for category in match.categories:
                counts[category] += 1
                score += self.category_weights[category]
                add_reason(category)

            for pattern in match.dangerous:
                if pattern in fired:
                    continue
                fired.add(pattern)
                score += self.dangerous_weights[pattern]
                add_reason(pattern)

        if not reasons:
            reasons.append(BASELINE_REASON)

        score = max(0, min(100, score))

        return RiskDelta(
            score=score,
            level=self.level_for(score),
            reasons=reasons,
            changed_file_counts=counts,
        )

    def level_for(self, score: int) -> RiskLevel:
        if score >= self.level_thresholds["high"]:
            return RiskLevel.HIGH
        if score >= self.level_thresholds["medium"]:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def _validate_policy(self, policy: dict[str, Any], path: Path) -> None:
        """Validate policy schema strictly and reject unknown keys."""
        if not isinstance(policy, dict):
            raise ValueError(f"Policy {path} must be a YAML object")

        allowed = {"category_patterns", "category_weights", "dangerous_weights", "level_thresholds"}
        unknown = sorted(set(policy.keys()) - allowed)
        if unknown:
            raise ValueError(
                f"Unsupported key(s) in risk policy {path}: {', '.join(unknown)}. "
                "Only category_patterns, category_weights, dangerous_weights, "
                "level_thresholds are allowed."
            )

        patterns = policy.get("category_patterns", {})
        if patterns is not None:
            if not isinstance(patterns, dict):
                raise ValueError(f"category_patterns in {path} must be a map")
            for name, pattern in patterns.items():
                if name not in CATEGORIES:
                    raise ValueError(f"Invalid category {name} in {path}")
                if not isinstance(pattern, str):
                    raise ValueError(f"category_patterns[{name}] in {path} must be a string")
                try:
                    re.compile(pattern)
                except re.error as exc:
                    raise ValueError(
                        f"category_patterns[{name}] in {path} is not a valid regex: {exc}"
                    ) from exc

        for key, valid in (("category_weights", CATEGORIES), ("dangerous_weights", DANGEROUS)):
            weights = policy.get(key, {})
            if weights is None:
                continue
            if not isinstance(weights, dict):
                raise ValueError(f"{key} in {path} must be a map")
            for name, weight in weights.items():
                if name not in valid:
                    raise ValueError(f"Invalid {key} entry {name} in {path}")
                if isinstance(weight, bool) or not isinstance(weight, int) or weight < 0:
                    raise ValueError(f"{key}[{name}] in {path} must be a non-negative integer")

        thresholds = policy.get("level_thresholds", {})
        if thresholds is not None:
            if not isinstance(thresholds, dict):
                raise ValueError(f"level_thresholds in {path} must be a map")
            merged = {**self.DEFAULT_LEVEL_THRESHOLDS, **thresholds}
            unknown = sorted(set(merged) - set(self.DEFAULT_LEVEL_THRESHOLDS))
            if unknown:
                raise ValueError(f"level_thresholds in {path} has unknown key(s): {', '.join(unknown)}")
            for value in merged.values():
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"level_thresholds in {path} must be integers")
            high, medium = merged["high"], merged["medium"]
            if not (100 >= high > medium > 0):
                raise ValueError(f"level_thresholds in {path} must satisfy 100 >= high > medium > 0")

    def _load_policy(self, path: Path) -> dict[str, str]:
        """Load risk policy YAML to override weights, thresholds, and patterns."""
        if not path.exists():
            raise FileNotFoundError(f"Risk policy file not found: {path}")

        try:
            policy = yaml.safe_load(path.read_text()) or {}
        except Exception as exc:
            raise ValueError(f"Failed to parse risk policy {path}: {exc}") from exc

        self._validate_policy(policy, path)

        self.category_weights.update(policy.get("category_weights") or {})
        self.dangerous_weights.update(policy.get("dangerous_weights") or {})
        for key, value in (policy.get("level_thresholds") or {}).items():
            self.level_thresholds[key] = int(value)

        patterns = dict(policy.get("category_patterns") or {})
        if patterns:
            annotations.notice(
                f"Risk policy overrides patterns for: {', '.join(sorted(patterns))}"
            )
        return patterns


_default_calculator = RiskDeltaCalculator()


def calculate_risk_delta(files: list[ChangedFile]) -> RiskDelta:
    """Score a PR's file list with the built-in weights."""
    return _default_calculator.calculate(files)
