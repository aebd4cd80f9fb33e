"""Turn a unified diff (e.g. ``git diff`` output) into ChangedFile records."""

import re

from unidiff import PatchSet
from unidiff.errors import UnidiffParseError

from . import annotations
from .models import ChangedFile


_DIFF_HEADER = re.compile(r"^diff --git a/(.+?) b/(.+)$", re.MULTILINE)


def _status(patched_file) -> str:
    if patched_file.is_added_file:
        return "added"
    if patched_file.is_removed_file:
        return "removed"
    if patched_file.is_rename:
        return "renamed"
    return "modified"


def parse_unified_diff(diff_content: str) -> list[ChangedFile]:
    """Parse a multi-file diff; patches carry hunks only, as GitHub's API does."""
    if not diff_content.strip():
        return []
    try:
        patch = PatchSet(diff_content)
    except UnidiffParseError as e:
        annotations.warning(f"Could not parse diff with unidiff ({e}); using line scan")
        return _fallback_parse(diff_content)

    files = []
    for patched_file in patch:
        hunks = "".join(str(hunk) for hunk in patched_file).rstrip("\n")
        files.append(ChangedFile(
            filename=patched_file.path,
            status=_status(patched_file),
            additions=patched_file.added,
            deletions=patched_file.removed,
            changes=patched_file.added + patched_file.removed,
            patch=hunks or None,
        ))
    return files


def _fallback_parse(diff_content: str) -> list[ChangedFile]:
    """Split on ``diff --git`` headers and keep everything from the first hunk."""
    headers = list(_DIFF_HEADER.finditer(diff_content))
    files = []
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(diff_content)
        body = diff_content[header.end():end]
        hunk_start = body.find("\n@@")
        patch = body[hunk_start + 1:].rstrip("\n") if hunk_start != -1 else None
        lines = patch.split("\n") if patch else []
        added = sum(1 for l in lines if l.startswith("+") and not l.startswith("+++"))
        removed = sum(1 for l in lines if l.startswith("-") and not l.startswith("---"))
        files.append(ChangedFile(
            filename=header.group(2),
            additions=added,
            deletions=removed,
            changes=added + removed,
            patch=patch,
        ))
    return files
