"""
Pattern Matcher - tags a changed file with risk categories and dangerous
code patterns.

Categories (a file may carry several):
  auth      authentication / session / credential code
  database  ORM, query builders, raw SQL
  api       route handlers and controllers
  config    env files, configuration, secret stores

Dangerous patterns:
  unsafe_execution  dynamic evaluation and unsanitized HTML injection
  secret_exposure   literals assigned to secret-like names on added lines
"""

import re
from dataclasses import dataclass

from .models import ChangedFile


CATEGORIES = ("auth", "database", "api", "config")
DANGEROUS = ("unsafe_execution", "secret_exposure")


@dataclass(frozen=True)
class PatternMatch:
    categories: tuple[str, ...] = ()
    dangerous: tuple[str, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.categories and not self.dangerous


def added_lines(patch: str | None) -> list[str]:
    """Lines a patch adds, header marker excluded, prefix kept."""
    if not patch:
        return []
    return [l for l in patch.split("\n") if l.startswith("+") and not l.startswith("+++")]


def removed_lines(patch: str | None) -> list[str]:
    """Lines a patch removes, header marker excluded, prefix kept."""
    if not patch:
        return []
    return [l for l in patch.split("\n") if l.startswith("-") and not l.startswith("---")]


class PatternMatcher:
    """Pure classifier over (filename, patch)."""

    CATEGORY_PATTERNS = {
        "auth": r"auth|login|session|jwt|token|password|credential",
        "database": r"database|query|sql|prisma|mongoose|sequelize|knex",
        "api": r"/api/|route\.ts|endpoint|controller",
        "config": r"\.env|config|secret|key",
    }

    # api and config look at the path only: "key" or "config" in a patch body
    # is too common to mean the file is a config surface.
    PATCH_SCOPED = frozenset({"auth", "database"})

    UNSAFE_EXECUTION = r"eval\(|exec\(|innerHTML|dangerouslySetInnerHTML"

    SECRET_EXPOSURE = [
        r"process\.env\[",
        r"os\.environ\[",
        r"hardcoded.*password",
        r"api.*key.*=.*[\"']",
        r"(secret|token|passw(or)?d|api_?key|access_?key|private_?key)\w*[\"']?\s*[:=]\s*[\"'][^\"'\s]{4,}[\"']",
    ]

    def __init__(self, category_patterns: dict[str, str] | None = None):
        patterns = dict(self.CATEGORY_PATTERNS)
        if category_patterns:
            patterns.update(category_patterns)
        self.category_patterns = {
            name: re.compile(pattern, re.IGNORECASE) for name, pattern in patterns.items()
        }
        self._unsafe = re.compile(self.UNSAFE_EXECUTION, re.IGNORECASE)
        self._secret = [re.compile(p, re.IGNORECASE) for p in self.SECRET_EXPOSURE]

    def match(self, file: ChangedFile) -> PatternMatch:
        filename = file.filename.lower()
        patch = file.patch or ""

        categories = []
        for name in CATEGORIES:
            pattern = self.category_patterns[name]
            if pattern.search(filename):
                categories.append(name)
            elif name in self.PATCH_SCOPED and patch and pattern.search(patch):
                categories.append(name)

        dangerous = []
        if patch and self._unsafe.search(patch):
            dangerous.append("unsafe_execution")
        if any(p.search(line) for line in added_lines(patch) for p in self._secret):
            dangerous.append("secret_exposure")

        return PatternMatch(categories=tuple(categories), dangerous=tuple(dangerous))


_default_matcher = PatternMatcher()


def match_file(file: ChangedFile) -> PatternMatch:
    """Match with the built-in pattern families."""
    return _default_matcher.match(file)
