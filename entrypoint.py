#!/usr/bin/env python3
"""
CodeArmor PR Risk Engine - GitHub Action Entrypoint

Scores the risk a pull request introduces, checks it against past security
fixes, runs the LLM classifier, and publishes the combined result as action
outputs and a JSON report.
"""

import json
import sys
from pathlib import Path

from codearmor import annotations
from codearmor.annotations import set_output
from codearmor.classifier import FindingClassifier
from codearmor.config import Settings, get_env, get_input, parse_int
from codearmor.diff_parser import parse_unified_diff
from codearmor.engine import PRAnalysisEngine
from codearmor.errors import CodeArmorError, RateLimitExceeded, UpstreamError
from codearmor.github_source import GitHubSource
from codearmor.models import PRAnalysisResult, RiskLevel, SecurityStatus
from codearmor.regression import RegressionDetector
from codearmor.risk_delta import RiskDeltaCalculator


def load_event() -> dict:
    event_path = get_env("GITHUB_EVENT_PATH")
    if not event_path or not Path(event_path).exists():
        return {}
    with open(event_path, encoding="utf-8") as f:
        return json.load(f)


def resolve_pr_number(event: dict) -> int | None:
    number = (event.get("pull_request") or {}).get("number")
    if number:
        return int(number)
    return parse_int(get_input("PR_NUMBER"), 0) or None


def resolve_stub_diff() -> Path | None:
    stub_path = get_env("STUB_DIFF_PATH")
    if not stub_path:
        return None
    path = Path(stub_path)
    if not path.is_absolute():
        workspace = Path(get_env("GITHUB_WORKSPACE", ".")).resolve()
        path = workspace / path
    if not path.exists():
        annotations.error(f"STUB_DIFF_PATH set but file not found: {path}")
        sys.exit(1)
    return path


def main():
    """Main entrypoint for the action."""
    settings = Settings.from_environment()
    event = load_event()

    github_repository = get_env("GITHUB_REPOSITORY")
    if "/" not in github_repository:
        annotations.error("GITHUB_REPOSITORY must be set as owner/repo")
        sys.exit(1)
    owner, repo = github_repository.split("/", 1)

    pr_number = resolve_pr_number(event)
    if not pr_number:
        annotations.notice("Not a pull request event, skipping analysis")
        sys.exit(0)

    stub_diff = resolve_stub_diff()
    if not stub_diff and not settings.github_token:
        annotations.error("GitHub token is required")
        sys.exit(1)

    if settings.risk_policy_path and not settings.risk_policy_path.exists():
        annotations.error(f"Risk policy file not found: {settings.risk_policy_path}")
        sys.exit(1)

    with annotations.group("CodeArmor PR Analysis"):
        print(f"Repository: {owner}/{repo}")
        print(f"PR: #{pr_number}")
        print(f"Classifier: {settings.provider} ({settings.model})")
        if stub_diff:
            print(f"Diff source: {stub_diff}")

    try:
        risk_calculator = RiskDeltaCalculator(settings.risk_policy_path)
    except (ValueError, FileNotFoundError) as e:
        annotations.error(str(e))
        sys.exit(1)

    classifier = FindingClassifier.from_settings(settings)

    try:
        if stub_diff:
            engine = PRAnalysisEngine(None, classifier, risk_calculator=risk_calculator)
            files = parse_unified_diff(stub_diff.read_text(encoding="utf-8"))
            title = (event.get("pull_request") or {}).get("title", "")
            result = engine.analyze_files(
                owner, repo, pr_number, files, title=title, detect_regressions=False
            )
        else:
            source = GitHubSource(settings.github_token, timeout=settings.github_timeout)
            detector = RegressionDetector(
                source,
                history_limit=settings.history_limit,
                max_security_prs=settings.max_security_prs,
                max_workers=settings.regression_workers,
            )
            engine = PRAnalysisEngine(
                source,
                classifier,
                risk_calculator=risk_calculator,
                regression_detector=detector,
            )
            result = engine.analyze_pull_request(
                owner, repo, pr_number, identifier=get_env("GITHUB_ACTOR") or "anonymous"
            )
    except RateLimitExceeded as e:
        annotations.error(str(e))
        sys.exit(1)
    except UpstreamError as e:
        annotations.error(f"{e.user_message} ({e})")
        sys.exit(2 if e.retryable else 1)
    except CodeArmorError as e:
        annotations.error(f"{e.user_message} ({e})")
        sys.exit(1)

    print_result(result)
    publish_outputs(result)
    write_report(result, settings.report_path)

    if settings.fail_on_high_risk and should_fail(result):
        annotations.error(
            f"High risk detected: risk {result.risk_delta.level.value} "
            f"({result.risk_delta.score}), security {result.security_score.status.label} "
            f"({result.security_score.score})"
        )
        sys.exit(1)


def should_fail(result: PRAnalysisResult) -> bool:
    return (
        result.risk_delta.level == RiskLevel.HIGH
        or result.security_score.status == SecurityStatus.CRITICAL
    )


def print_result(result: PRAnalysisResult):
    delta = result.risk_delta
    with annotations.group(f"Risk Delta: {delta.score} ({delta.level.value})"):
        for reason in delta.reasons:
            print(f"- {reason}")
        counts = ", ".join(f"{k}={v}" for k, v in delta.changed_file_counts.items())
        print(f"Changed files by category: {counts}")

    if result.regressions:
        with annotations.group(f"Security Regressions ({len(result.regressions)})"):
            for regression in result.regressions:
                annotations.warning(regression.description)

    score = result.security_score
    with annotations.group(
        f"Security Score: {score.score} {score.status.emoji} {score.status.label}"
    ):
        for finding in result.findings:
            location = f" [{finding.file}]" if finding.file else ""
            print(
                f"- {finding.severity.value}/{finding.certainty.value}: "
                f"{finding.title}{location}"
            )
        if not result.findings:
            print("No findings reported")
        if result.assumptions:
            print("Assumptions:")
            for assumption in result.assumptions:
                print(f"  - {assumption}")
        if result.truncated:
            print("Note: diff was truncated before classification")


def publish_outputs(result: PRAnalysisResult):
    set_output("risk_score", str(result.risk_delta.score))
    set_output("risk_level", result.risk_delta.level.value)
    set_output("regressions_count", str(len(result.regressions)))
    set_output("findings_count", str(len(result.findings)))
    set_output("security_score", str(result.security_score.score))
    set_output("security_status", result.security_score.status.value)


def write_report(result: PRAnalysisResult, report_path: Path | None):
    if not report_path:
        return
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(result.to_json(), encoding="utf-8")
    set_output("report_path", str(report_path))
    print(f"Report written to {report_path}")


if __name__ == "__main__":
    main()
