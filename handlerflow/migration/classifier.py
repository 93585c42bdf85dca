"""Name-based classification of legacy handlers into unified step kinds."""
from __future__ import annotations

from typing import Optional, Tuple

DEFAULT_STEP_KIND = "AnalysisStep"

# (substrings, step kind), first match wins. Order matters: a name containing
# both "generate" and "test" is a TestingStep.
STEP_KIND_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("analyze", "analysis"), "AnalysisStep"),
    (("refactor", "refactoring"), "RefactoringStep"),
    (("test", "testing"), "TestingStep"),
    (("generate", "documentation"), "DocumentationStep"),
    (("validate", "validation"), "ValidationStep"),
    (("deploy", "deployment"), "DeploymentStep"),
    (("security",), "SecurityStep"),
    (("optimize", "optimization"), "OptimizationStep"),
)


def match_step_kind(handler_name: str) -> Optional[str]:
    """Step kind of the first rule matching ``handler_name``, or None."""
    lowered = handler_name.lower()
    for needles, kind in STEP_KIND_RULES:
        if any(needle in lowered for needle in needles):
            return kind
    return None


def classify_step_kind(handler_name: str) -> str:
    """Step kind for a legacy handler name, defaulting to AnalysisStep.

    >>> classify_step_kind("AnalyzeArchitectureHandler")
    'AnalysisStep'
    >>> classify_step_kind("GenerateScriptHandler")
    'DocumentationStep'
    """
    return match_step_kind(handler_name) or DEFAULT_STEP_KIND


def is_kind_determinable(handler_name: str) -> bool:
    """Whether a rule matches, as opposed to falling back to the default kind."""
    return match_step_kind(handler_name) is not None
