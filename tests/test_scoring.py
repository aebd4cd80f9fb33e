import itertools
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from codearmor.models import (  # noqa: E402
    Certainty, Finding, FindingCategory, SecurityStatus, Severity,
)
from codearmor.scoring import calculate_security_score, summarize_findings  # noqa: E402


def finding(title="Issue", severity=Severity.MEDIUM, certainty=Certainty.POTENTIAL, category=None, id="f"):
    return Finding(id=id, title=title, severity=severity, certainty=certainty, category=category)


class SecurityScoreTests(unittest.TestCase):
    def test_no_findings_is_secure(self):
        result = calculate_security_score([])
        self.assertEqual(result.score, 100)
        self.assertEqual(result.status, SecurityStatus.SECURE)

    def test_penalties(self):
        self.assertEqual(calculate_security_score([finding(severity=Severity.MEDIUM, certainty=Certainty.DEFINITE)]).score, 85)
        self.assertEqual(calculate_security_score([finding(severity=Severity.MEDIUM)]).score, 93)  # 92.5 rounds up
        self.assertEqual(calculate_security_score([finding(severity=Severity.LOW)]).score, 98)  # 97.5 rounds up
        self.assertEqual(calculate_security_score([finding(severity=Severity.HIGH)]).score, 85)

    def test_definite_high_caps_at_45(self):
        findings = [finding(severity=Severity.HIGH, certainty=Certainty.DEFINITE)]
        self.assertEqual(calculate_security_score(findings).score, 45)
        self.assertEqual(calculate_security_score(findings).status, SecurityStatus.CRITICAL)

    def test_cap_only_lowers(self):
        findings = [finding(severity=Severity.HIGH, certainty=Certainty.DEFINITE, id=str(i)) for i in range(3)]
        self.assertEqual(calculate_security_score(findings).score, 10)

    def test_hardcoded_api_key_title_caps_even_when_low(self):
        result = calculate_security_score([finding(title="Hardcoded API Key", severity=Severity.LOW)])
        self.assertLessEqual(result.score, 45)

    def test_explicit_secret_category_caps(self):
        result = calculate_security_score([
            finding(title="Leaked credential", severity=Severity.LOW, category=FindingCategory.SECRET)
        ])
        self.assertEqual(result.score, 45)

    def test_secret_title_caps_whatever_the_category(self):
        for category in FindingCategory:
            result = calculate_security_score([
                finding(title="Hardcoded API Key", severity=Severity.LOW, category=category)
            ])
            self.assertLessEqual(result.score, 45, category)

    def test_non_secret_title_and_category_is_not_capped(self):
        result = calculate_security_score([
            finding(title="Verbose error page", severity=Severity.LOW, category=FindingCategory.OTHER)
        ])
        self.assertEqual(result.score, 98)

    def test_floor_at_zero(self):
        findings = [finding(severity=Severity.HIGH, certainty=Certainty.DEFINITE, id=str(i)) for i in range(5)]
        self.assertEqual(calculate_security_score(findings).score, 0)

    def test_status_thresholds(self):
        self.assertEqual(
            calculate_security_score([finding(severity=Severity.HIGH, certainty=Certainty.DEFINITE, category=FindingCategory.OTHER, title="x")]).score,
            45,
        )
        two_medium = [finding(severity=Severity.MEDIUM, certainty=Certainty.DEFINITE, id=str(i)) for i in range(2)]
        self.assertEqual(calculate_security_score(two_medium).status, SecurityStatus.NEEDS_ATTENTION)  # 70
        one_medium = [finding(severity=Severity.MEDIUM, certainty=Certainty.DEFINITE)]
        self.assertEqual(calculate_security_score(one_medium).status, SecurityStatus.SECURE)  # 85

    def test_order_independence(self):
        findings = [
            finding(title="SQL injection", severity=Severity.HIGH, id="a"),
            finding(title="Open redirect", severity=Severity.MEDIUM, certainty=Certainty.DEFINITE, id="b"),
            finding(title="Verbose errors", severity=Severity.LOW, id="c"),
            finding(title="Missing CSRF", severity=Severity.MEDIUM, id="d"),
        ]
        scores = {calculate_security_score(list(p)) for p in itertools.permutations(findings)}
        self.assertEqual(len(scores), 1)

    def test_idempotent(self):
        findings = [finding(title="Hardcoded secret", severity=Severity.MEDIUM)]
        self.assertEqual(calculate_security_score(findings), calculate_security_score(findings))

    def test_summary_counts(self):
        summary = summarize_findings([
            finding(severity=Severity.HIGH, certainty=Certainty.DEFINITE),
            finding(severity=Severity.LOW),
            finding(severity=Severity.LOW),
        ])
        self.assertEqual(summary, {"high": 1, "medium": 0, "low": 2, "definite": 1, "potential": 2})


if __name__ == "__main__":
    unittest.main()
