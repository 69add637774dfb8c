"""Startup requirement checks.

Best-effort checks for things Python packaging cannot guarantee: the
interpreter version, a configured web endpoint, and the local inference
server binary. The entry point reports these before doing any work.
"""

from __future__ import annotations

from dataclasses import dataclass
import shutil
import sys

from seamless.translation.config import BackendMode, TranslationConfig


@dataclass(frozen=True)
class RequirementIssue:
    id: str
    title: str
    details: str
    severity: str = "error"  # "error" | "warning"


def check_startup_requirements(config: TranslationConfig) -> list[RequirementIssue]:
    issues: list[RequirementIssue] = []

    if sys.version_info < (3, 12):
        issues.append(
            RequirementIssue(
                id="python_version",
                title="Python >= 3.12",
                details=f"Current version: {sys.version.split()[0]}",
                severity="error",
            )
        )

    if config.mode == BackendMode.WEB and not config.web.api_url.strip():
        issues.append(
            RequirementIssue(
                id="api_url",
                title="Web API endpoint",
                details="No API URL configured. Set SEAMLESS_API_URL or pass --api-url.",
                severity="error",
            )
        )

    if config.mode == BackendMode.LOCAL and shutil.which("ollama") is None:
        issues.append(
            RequirementIssue(
                id="ollama",
                title="Ollama (local model server)",
                details=(
                    "Not found in PATH. Install Ollama, or point SEAMLESS_LOCAL_HOST "
                    f"at a running server (currently {config.local.host})."
                ),
                severity="warning",
            )
        )

    return issues


def has_blocking_issues(issues: list[RequirementIssue]) -> bool:
    return any(issue.severity == "error" for issue in issues)
