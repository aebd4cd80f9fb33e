"""
Finding Classifier - asks an LLM for vulnerability findings under a fixed
certainty rubric and validates the reply strictly.

The model output is untrusted: anything that is not a JSON object with a
findings list of well-formed entries raises ClassificationError instead of
degrading to "no findings".
"""

import json
from typing import Any

import requests

from .config import DEFAULT_MODELS, Settings
from .errors import ClassificationError, UpstreamError, UpstreamTimeout
from .models import (
    Certainty, ChangedFile, ClassificationResult, Finding, FindingCategory, Severity,
)
from .validation import MAX_SNIPPET_LENGTH


GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
OPENROUTER_URL = "https://openrouter.ai/api/v1"

MAX_CONTEXT_LENGTH = 8000
MAX_TRUNCATED_FILES = 10
MAX_PATCH_CHARS = 500
TRUNCATION_MARKER = "\n... (truncated)"
FILE_SEPARATOR = "\n\n---\n\n"

PULL_REQUEST = "pull_request"
SNIPPET = "snippet"
REPOSITORY = "repository"

_ROLES = {
    PULL_REQUEST: (
        "You are CodeArmor AI, a conservative Senior DevSecOps Engineer analyzing "
        "a GitHub Pull Request for security vulnerabilities."
    ),
    SNIPPET: (
        "You are CodeArmor AI, a conservative Senior AppSec Engineer. "
        "Analyze code for OWASP Top 10 vulnerabilities."
    ),
    REPOSITORY: (
        "You are CodeArmor AI, a conservative Senior DevSecOps Engineer. "
        "Analyze the codebase for OWASP Top 10 vulnerabilities."
    ),
}

CERTAINTY_RUBRIC = """CERTAINTY CLASSIFICATION RULES (MANDATORY):

Label as "Definite Vulnerability" ONLY if ALL of these are true:
1. The vulnerability is DIRECTLY EXPLOITABLE in production
2. It involves at least ONE of:
   - Authentication bypass
   - Authorization failure (IDOR, privilege escalation)
   - SQL/NoSQL injection with user input
   - Hardcoded secrets ACTUALLY USED at runtime
   - Remote Code Execution
   - Sensitive data exposure to unauthorized users
   - Missing access control on public endpoints
3. NO assumptions are required to exploit it
4. It is NOT any of the following:
   - Feature flags (e.g., disableInputAttributeSyncing)
   - Configuration toggles
   - Environment-specific defaults
   - Build-time constants
   - Framework internal flags
   - Non-user-controlled values
   - Code paths unreachable in production

Label as "Potential Risk (Context Required)" if:
- You need to make ANY assumption about data flow
- It's a configuration that MIGHT be unsafe depending on usage
- It requires external context to determine exploitability
- It's a feature flag or toggle
- Severity is LOW (LOW findings are almost NEVER Definite)
- Variable origins or data flow are unclear
- Missing context about validation elsewhere
- Uncertainty about framework protections

SEVERITY ALIGNMENT:
- LOW severity findings should be "Potential Risk" unless absolutely certain
- HIGH severity requires clear evidence of exploitability to be "Definite"
- If you list assumptions, the finding MUST be "Potential Risk"

AVOID OVER-FLAGGING:
- Be conservative and honest
- If code looks safe, don't flag it
- Configuration changes are NOT vulnerabilities unless proven exploitable
- Focus on CHANGES in the PR, not existing code unless context is needed

RETURN JSON ONLY:
{
  "findings": [
    {
      "id": "unique_id",
      "title": "Short, clear title",
      "severity": "HIGH" | "MEDIUM" | "LOW",
      "certainty": "Definite" | "Potential",
      "category": "secret" | "access_control" | "injection" | "other",
      "description": "1-2 sentences explaining the issue in the PR changes",
      "file": "filename",
      "vulnerableCode": "The specific changed lines",
      "fixedCode": "Minimal secure alternative"
    }
  ],
  "assumptions": ["List every assumption you made during analysis"]
}"""

SEVERITY_ALIASES = {
    "CRITICAL": Severity.HIGH,
    "ERROR": Severity.HIGH,
    "WARNING": Severity.MEDIUM,
    "INFO": Severity.LOW,
}


def system_prompt(mode: str) -> str:
    return f"{_ROLES[mode]}\n\n{CERTAINTY_RUBRIC}"


def _file_block(filename: str, patch: str) -> str:
    return f"File: {filename}\nChanges:\n{patch}"


def build_pr_context(
    files: list[ChangedFile], max_length: int = MAX_CONTEXT_LENGTH
) -> tuple[str, bool]:
    """Join patched files into one prompt body; returns (text, truncated)."""
    patched = [f for f in files if f.patch]
    context = FILE_SEPARATOR.join(_file_block(f.filename, f.patch) for f in patched)
    if len(context) <= max_length:
        return context, False

    blocks = []
    for f in patched[:MAX_TRUNCATED_FILES]:
        patch = f.patch
        if len(patch) > MAX_PATCH_CHARS:
            patch = patch[:MAX_PATCH_CHARS] + TRUNCATION_MARKER
        blocks.append(_file_block(f.filename, patch))
    return FILE_SEPARATOR.join(blocks)[:max_length], True


def build_repository_context(
    files: dict[str, str], max_length: int = MAX_SNIPPET_LENGTH
) -> tuple[str, bool]:
    """Render a path -> content snapshot; returns (text, truncated)."""
    text = "\n".join(
        f"FILE: {path}\n----------------\n{content.strip()}\n\n"
        for path, content in files.items()
    )
    if len(text) > max_length:
        return text[:max_length], True
    return text, False


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _parse_severity(value: Any, index: int) -> Severity:
    raw = str(value or "").strip().upper()
    if raw in Severity.__members__:
        return Severity[raw]
    if raw in SEVERITY_ALIASES:
        return SEVERITY_ALIASES[raw]
    raise ClassificationError(f"Finding {index} has unknown severity: {value!r}")


def _parse_category(value: Any) -> FindingCategory | None:
    try:
        return FindingCategory(str(value).strip().lower()) if value else None
    except ValueError:
        return None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def parse_classifier_response(raw: str | None) -> tuple[list[Finding], list[str]]:
    """Validate a model reply into (findings, assumptions)."""
    if not raw or not raw.strip():
        raise ClassificationError("Classifier response was empty")

    try:
        parsed = json.loads(_strip_fences(raw))
    except json.JSONDecodeError as exc:
        raise ClassificationError(f"Classifier response is not valid JSON: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ClassificationError("Classifier response must be a JSON object")

    if "findings" not in parsed:
        raise ClassificationError("Classifier response has no 'findings' key")
    raw_findings = parsed["findings"]
    if not isinstance(raw_findings, list):
        raise ClassificationError("Classifier 'findings' must be a list")

    findings = []
    for i, item in enumerate(raw_findings):
        if not isinstance(item, dict):
            raise ClassificationError(f"Finding {i} is not an object")
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ClassificationError(f"Finding {i} has no title")

        certainty = (
            Certainty.DEFINITE
            if str(item.get("certainty", "")).strip().lower() == "definite"
            else Certainty.POTENTIAL
        )
        findings.append(Finding(
            id=str(item.get("id") or f"finding-{i}"),
            title=title.strip(),
            severity=_parse_severity(item.get("severity"), i),
            certainty=certainty,
            description=_optional_str(item.get("description")) or "",
            file=_optional_str(item.get("file")),
            vulnerable_code=_optional_str(item.get("vulnerableCode", item.get("vulnerable_code"))),
            fixed_code=_optional_str(item.get("fixedCode", item.get("fixed_code"))),
            category=_parse_category(item.get("category")),
        ))

    # Omitted assumptions mean none were made; anything else must be a list of strings.
    assumptions = parsed.get("assumptions")
    if assumptions is None:
        assumptions = []
    if not isinstance(assumptions, list) or not all(isinstance(a, str) for a in assumptions):
        raise ClassificationError("Classifier 'assumptions' must be a list of strings")
    return findings, list(assumptions)


class FindingClassifier:
    """LLM-backed vulnerability classifier."""

    def __init__(
        self,
        provider: str = "groq",
        api_key: str = "",
        model: str | None = None,
        timeout: float = 60.0,
        ollama_host: str = "",
        max_context_length: int = MAX_CONTEXT_LENGTH,
    ):
        self.provider = provider
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS.get(provider, DEFAULT_MODELS["groq"])
        self.timeout = timeout
        self.ollama_host = ollama_host
        self.max_context_length = max_context_length

    @classmethod
    def from_settings(cls, settings: Settings) -> "FindingClassifier":
        return cls(
            provider=settings.provider,
            api_key=settings.api_key,
            model=settings.model,
            timeout=settings.classifier_timeout,
            ollama_host=settings.ollama_host,
            max_context_length=settings.max_context_length,
        )

    def classify_pull_request(self, files: list[ChangedFile]) -> ClassificationResult:
        context, truncated = build_pr_context(files, self.max_context_length)
        prompt = f"Analyze this Pull Request for security issues:\n\n{context}"
        return self._classify(PULL_REQUEST, prompt, truncated)

    def classify_snippet(self, code: str, truncated: bool = False) -> ClassificationResult:
        prompt = f"CODE SNIPPET:\n```\n{code}\n```"
        return self._classify(SNIPPET, prompt, truncated)

    def classify_repository(self, files: dict[str, str]) -> ClassificationResult:
        context, truncated = build_repository_context(files)
        return self._classify(REPOSITORY, f"CODEBASE SNAPSHOT:\n{context}", truncated)

    def _classify(self, mode: str, prompt: str, truncated: bool) -> ClassificationResult:
        raw = self._call_provider(system_prompt(mode), prompt)
        findings, assumptions = parse_classifier_response(raw)
        return ClassificationResult(findings=findings, assumptions=assumptions, truncated=truncated)

    def _call_provider(self, system: str, prompt: str) -> str:
        if self.provider == "groq":
            return self._call_groq(system, prompt)
        elif self.provider in ("openai", "openrouter", "ollama"):
            return self._call_openai_compatible(system, prompt)
        elif self.provider == "anthropic":
            return self._call_anthropic(system, prompt)
        raise ValueError(f"Unknown provider: {self.provider}")

    def _call_groq(self, system: str, prompt: str) -> str:
        """Call Groq's OpenAI-compatible endpoint in JSON mode."""
        if not self.api_key:
            raise UpstreamError("GROQ_API_KEY is not configured", service="Groq")

        try:
            res = requests.post(
                GROQ_URL,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    "response_format": {"type": "json_object"},
                },
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise UpstreamTimeout(f"Groq request timed out: {exc}", service="Groq") from exc
        except requests.RequestException as exc:
            raise UpstreamError(f"Groq request failed: {exc}", service="Groq") from exc

        if not res.ok:
            raise UpstreamError(
                f"Groq API error: {res.status_code} {res.text}",
                service="Groq",
                status_code=res.status_code,
            )

        try:
            data = res.json()
        except ValueError as exc:
            raise ClassificationError("Groq response body is not JSON") from exc
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ClassificationError("Groq response was empty") from exc

    def _call_openai_compatible(self, system: str, prompt: str) -> str:
        """Call OpenAI, OpenRouter or Ollama through the openai SDK."""
        import openai

        if self.provider == "ollama":
            base_url = (self.ollama_host or "http://localhost:11434").rstrip("/")
            if not base_url.endswith("/v1"):
                base_url = f"{base_url}/v1"
            client = openai.OpenAI(api_key="ollama", base_url=base_url, timeout=self.timeout)
        elif self.provider == "openrouter":
            client = openai.OpenAI(
                api_key=self.api_key, base_url=OPENROUTER_URL, timeout=self.timeout
            )
        else:
            client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout)

        service = self.provider.capitalize()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as exc:
            raise UpstreamTimeout(f"{service} request timed out: {exc}", service=service) from exc
        except openai.APIStatusError as exc:
            raise UpstreamError(
                f"{service} API error: {exc.status_code} {exc}",
                service=service,
                status_code=exc.status_code,
            ) from exc
        except openai.APIError as exc:
            raise UpstreamError(f"{service} request failed: {exc}", service=service) from exc
        return response.choices[0].message.content

    def _call_anthropic(self, system: str, prompt: str) -> str:
        """Call Anthropic API and return response."""
        import anthropic

        client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=4000,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as exc:
            raise UpstreamTimeout(f"Anthropic request timed out: {exc}", service="Anthropic") from exc
        except anthropic.APIStatusError as exc:
            raise UpstreamError(
                f"Anthropic API error: {exc.status_code} {exc}",
                service="Anthropic",
                status_code=exc.status_code,
            ) from exc
        except anthropic.APIError as exc:
            raise UpstreamError(f"Anthropic request failed: {exc}", service="Anthropic") from exc
        return response.content[0].text if response.content else ""
