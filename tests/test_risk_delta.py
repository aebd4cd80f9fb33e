import sys
import tempfile
import unittest
from pathlib import Path

import yaml

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from codearmor.models import ChangedFile, RiskLevel  # noqa: E402
from codearmor.risk_delta import BASELINE_REASON, RiskDeltaCalculator, calculate_risk_delta  # noqa: E402


def _policy_file(data) -> Path:
    with tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False) as f:
        yaml.safe_dump(data, f)
        return Path(f.name)


class RiskDeltaTests(unittest.TestCase):
    def test_empty_file_list_is_baseline(self):
        delta = calculate_risk_delta([])
        self.assertEqual(delta.score, 0)
        self.assertEqual(delta.level, RiskLevel.LOW)
        self.assertEqual(delta.reasons, [BASELINE_REASON])
        self.assertEqual(delta.changed_file_counts, {"auth": 0, "database": 0, "api": 0, "config": 0})

    def test_auth_file_without_dangerous_content(self):
        delta = calculate_risk_delta([ChangedFile(filename="auth/login.ts", patch="+const a = 1;")])
        self.assertEqual(delta.changed_file_counts["auth"], 1)
        self.assertEqual(delta.score, 15)
        self.assertEqual(delta.level, RiskLevel.LOW)
        self.assertEqual(delta.reasons, ["Authentication logic modified"])

    def test_auth_keyword_plus_hardcoded_secret(self):
        patch = "@@ -1,1 +1,2 @@\n const session = getSession();\n+const password = \"hunter2-prod\";"
        delta = calculate_risk_delta([ChangedFile(filename="lib/handler.ts", patch=patch)])
        self.assertEqual(delta.score, 45)
        self.assertEqual(delta.level, RiskLevel.MEDIUM)
        self.assertEqual(
            delta.reasons,
            ["Authentication logic modified", "Potential secrets exposure detected"],
        )

    def test_repeated_files_do_not_duplicate_reasons(self):
        f = ChangedFile(filename="app/api/auth/route.ts", patch="+eval(body)")
        delta = calculate_risk_delta([f, f, f])
        self.assertEqual(len(delta.reasons), len(set(delta.reasons)))
        self.assertEqual(delta.changed_file_counts["auth"], 3)
        self.assertEqual(delta.changed_file_counts["api"], 3)

    def test_dangerous_weight_applies_once_per_pr(self):
        files = [ChangedFile(filename=f"src/view{i}.tsx", patch="+el.innerHTML = x;") for i in range(3)]
        delta = calculate_risk_delta(files)
        self.assertEqual(delta.score, 25)

    def test_score_is_clamped_and_level_consistent(self):
        files = [
            ChangedFile(filename=f"app/api/auth/config{i}.ts", patch='+eval(x)\n+const token = "abcdef123";')
            for i in range(10)
        ]
        delta = calculate_risk_delta(files)
        self.assertEqual(delta.score, 100)
        self.assertEqual(delta.level, RiskLevel.HIGH)

    def test_level_thresholds(self):
        calc = RiskDeltaCalculator()
        self.assertEqual(calc.level_for(0), RiskLevel.LOW)
        self.assertEqual(calc.level_for(29), RiskLevel.LOW)
        self.assertEqual(calc.level_for(30), RiskLevel.MEDIUM)
        self.assertEqual(calc.level_for(59), RiskLevel.MEDIUM)
        self.assertEqual(calc.level_for(60), RiskLevel.HIGH)

    def test_bounds_hold_for_mixed_inputs(self):
        samples = [
            [],
            [ChangedFile(filename="README.md")],
            [ChangedFile(filename="db/query.sql", patch="+SELECT 1")],
            [ChangedFile(filename=".env", patch='+API_KEY="abc12345"')] * 5,
        ]
        calc = RiskDeltaCalculator()
        for files in samples:
            delta = calc.calculate(files)
            self.assertGreaterEqual(delta.score, 0)
            self.assertLessEqual(delta.score, 100)
            self.assertEqual(delta.level, calc.level_for(delta.score))


class RiskPolicyTests(unittest.TestCase):
    def test_policy_overrides_weights_and_thresholds(self):
        path = _policy_file({
            "category_weights": {"auth": 40},
            "level_thresholds": {"high": 80, "medium": 35},
        })
        calc = RiskDeltaCalculator(path)
        delta = calc.calculate([ChangedFile(filename="auth/login.ts")])
        self.assertEqual(delta.score, 40)
        self.assertEqual(delta.level, RiskLevel.MEDIUM)

    def test_policy_pattern_override(self):
        path = _policy_file({"category_patterns": {"database": r"repository"}})
        calc = RiskDeltaCalculator(path)
        delta = calc.calculate([ChangedFile(filename="src/user_repository.py")])
        self.assertEqual(delta.changed_file_counts["database"], 1)

    def test_unknown_key_rejected(self):
        path = _policy_file({"weights": {"auth": 1}})
        with self.assertRaises(ValueError):
            RiskDeltaCalculator(path)

    def test_invalid_regex_rejected(self):
        path = _policy_file({"category_patterns": {"auth": "["}})
        with self.assertRaises(ValueError):
            RiskDeltaCalculator(path)

    def test_negative_weight_rejected(self):
        path = _policy_file({"dangerous_weights": {"secret_exposure": -5}})
        with self.assertRaises(ValueError):
            RiskDeltaCalculator(path)

    def test_inverted_thresholds_rejected(self):
        path = _policy_file({"level_thresholds": {"high": 20, "medium": 50}})
        with self.assertRaises(ValueError):
            RiskDeltaCalculator(path)

    def test_non_integer_thresholds_rejected(self):
        for thresholds in ({"high": 45.5}, {"medium": "30"}, {"medium": True}):
            path = _policy_file({"level_thresholds": thresholds})
            with self.assertRaises(ValueError, msg=repr(thresholds)):
                RiskDeltaCalculator(path)

    def test_missing_policy_file(self):
        with self.assertRaises(FileNotFoundError):
            RiskDeltaCalculator("/nonexistent/policy.yaml")

    def test_overrides_do_not_leak_into_defaults(self):
        RiskDeltaCalculator(_policy_file({"category_weights": {"auth": 99}}))
        delta = RiskDeltaCalculator().calculate([ChangedFile(filename="auth/login.ts")])
        self.assertEqual(delta.score, 15)


if __name__ == "__main__":
    unittest.main()
