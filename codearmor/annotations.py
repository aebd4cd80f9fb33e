"""
Workflow-command logging helpers.

Everything is printed to stdout in GitHub Actions annotation format so the
same output reads well in a runner log and in a local terminal.
"""

import hashlib
import os
from contextlib import contextmanager


def notice(message: str) -> None:
    print(f"::notice::{message}")


def warning(message: str) -> None:
    print(f"::warning::{message}")


def error(message: str) -> None:
    print(f"::error::{message}")


@contextmanager
def group(title: str):
    """Fold the enclosed output under a collapsible log group."""
    print(f"::group::{title}")
    try:
        yield
    finally:
        print("::endgroup::")


def set_output(name: str, value: str) -> None:
    """Set GitHub Actions output."""
    output_file = os.environ.get("GITHUB_OUTPUT")
    text = str(value)
    if output_file:
        delimiter = f"EOF_{hashlib.sha256(f'{name}:{text}'.encode()).hexdigest()[:16]}"
        with open(output_file, "a", encoding="utf-8") as f:
            f.write(f"{name}<<{delimiter}\n")
            f.write(f"{text}\n")
            f.write(f"{delimiter}\n")
    else:
        # Legacy fallback with escaping.
        escaped = text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
        print(f"::set-output name={name}::{escaped}")
