"""Startup diagnostics for Seamless Translator."""

from seamless.diagnostics.requirements import (
    RequirementIssue,
    check_startup_requirements,
    has_blocking_issues,
)

__all__ = ["RequirementIssue", "check_startup_requirements", "has_blocking_issues"]
