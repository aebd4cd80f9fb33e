"""
Runtime configuration.

Settings are read from the environment the way a GitHub Action receives its
inputs (``INPUT_*``), falling back to the conventional variable names so the
engine also runs from a plain shell.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from . import annotations


def get_env(name: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(name, default)


def get_input(name: str, default: str = "") -> str:
    """Read ``INPUT_<NAME>`` first, then ``<NAME>``."""
    return get_env(f"INPUT_{name}") or get_env(name, default)


def parse_bool(value: str) -> bool:
    """Parse boolean from string."""
    return value.lower() in ("true", "1", "yes")


def parse_float(value: str, default: float) -> float:
    """Parse a float from string with fallback."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_int(value: str, default: int) -> int:
    """Parse a positive int from string with fallback."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def resolve_path(raw: str | None, workspace: Path) -> Path | None:
    """Resolve a possibly-relative path against the GitHub workspace."""
    if not raw:
        return None
    candidate = Path(raw)
    if not candidate.is_absolute():
        candidate = workspace / candidate
    return candidate


DEFAULT_MODELS = {
    "groq": "llama-3.3-70b-versatile",
    "openai": "gpt-4o-mini",
    "openrouter": "anthropic/claude-sonnet-4",
    "ollama": "llama3.3",
    "anthropic": "claude-3-5-haiku-latest",
}


@dataclass
class Settings:
    github_token: str = ""
    provider: str = "groq"
    model: str = DEFAULT_MODELS["groq"]
    api_key: str = ""
    ollama_host: str = ""
    github_timeout: float = 30.0
    classifier_timeout: float = 60.0
    history_limit: int = 50
    max_security_prs: int = 20
    regression_workers: int = 8
    max_context_length: int = 8000
    risk_policy_path: Path | None = None
    fail_on_high_risk: bool = False
    report_path: Path | None = None

    @classmethod
    def from_environment(cls) -> "Settings":
        workspace = Path(get_env("GITHUB_WORKSPACE", ".")).resolve()

        provider = get_input("LLM_PROVIDER", "groq").strip().lower()
        if provider not in DEFAULT_MODELS:
            annotations.warning(f"Unknown LLM provider '{provider}', defaulting to 'groq'")
            provider = "groq"

        key_names = {
            "groq": "GROQ_API_KEY",
            "openai": "OPENAI_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
            "anthropic": "ANTHROPIC_API_KEY",
            "ollama": "",
        }
        api_key = get_input(key_names[provider]) if key_names[provider] else ""

        model = get_input("LLM_MODEL")
        if not model and provider == "groq":
            model = get_env("GROQ_MODEL")

        return cls(
            github_token=get_input("GITHUB_TOKEN"),
            provider=provider,
            model=model or DEFAULT_MODELS[provider],
            api_key=api_key,
            ollama_host=get_input("OLLAMA_HOST"),
            github_timeout=parse_float(get_input("GITHUB_TIMEOUT", "30"), 30.0),
            classifier_timeout=parse_float(get_input("CLASSIFIER_TIMEOUT", "60"), 60.0),
            history_limit=parse_int(get_input("HISTORY_LIMIT", "50"), 50),
            max_security_prs=parse_int(get_input("MAX_SECURITY_PRS", "20"), 20),
            regression_workers=parse_int(get_input("REGRESSION_WORKERS", "8"), 8),
            max_context_length=parse_int(get_input("MAX_CONTEXT_LENGTH", "8000"), 8000),
            risk_policy_path=resolve_path(get_input("RISK_POLICY"), workspace),
            fail_on_high_risk=parse_bool(get_input("FAIL_ON_HIGH_RISK", "false")),
            report_path=resolve_path(
                get_input("REPORT_PATH", ".codearmor/pr-analysis.json"), workspace
            ),
        )
