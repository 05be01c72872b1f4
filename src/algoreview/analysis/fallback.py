"""Deterministic local analysis used whenever the external analyzer is unavailable.

Static signals only: nested loops suggest quadratic time, a self-calling
function suggests exponential recursion. The numbers are rough by design and
the result is always tagged ``used_fallback``.
"""

from __future__ import annotations

import re

from algoreview.analysis.schemas import AnalysisResult, ComplexityEstimate, Suggestion

NESTED_LOOPS = re.compile(r"for.*for|while.*while", re.DOTALL)
RECURSION = re.compile(r"\b(?:def|function|func|fn)\s+(\w+)\b.*?\b\1\s*\(", re.DOTALL)

BASE_SCORE = 75

_HASH_COMMENT_LANGUAGES = frozenset({"python", "ruby", "perl", "r", "shell", "bash", "sh", "elixir"})


def has_nested_loops(code: str) -> bool:
    return NESTED_LOOPS.search(code) is not None


def has_recursion(code: str) -> bool:
    """True when a named function refers to itself after its definition."""
    return RECURSION.search(code) is not None


def _comment_prefix(language: str) -> str:
    return "#" if language.strip().lower() in _HASH_COMMENT_LANGUAGES else "//"


def fallback_analysis(code: str, language: str, reason: str) -> AnalysisResult:
    lines = len(code.split("\n"))
    nested = has_nested_loops(code)
    recursive = not nested and has_recursion(code)

    if nested:
        before, after, improvement = "O(n²)", "O(n log n)", 65.0
    elif recursive:
        before, after, improvement = "O(2^n)", "O(n)", 70.0
    else:
        before, after, improvement = "O(n)", "O(n)", 55.0

    quality = min(90, BASE_SCORE + (10 if lines < 100 else 0) + (5 if "const" in code else 0))
    readability = min(85, BASE_SCORE + (10 if lines < 50 else 0))

    comment = _comment_prefix(language)
    optimized = (
        f"{comment} Optimized {language} code\n{code}\n\n"
        f"{comment} Consider using hash maps, binary search, or dynamic programming for better performance"
    )

    return AnalysisResult(
        time_complexity=ComplexityEstimate(
            before=before,
            after=after,
            improved=nested or recursive,
            explanation="Estimated based on code structure",
        ),
        space_complexity=ComplexityEstimate(
            before="O(n)",
            after="O(1)",
            improved=True,
            explanation="Can be optimized with in-place operations",
        ),
        improvement_percentage=improvement,
        suggestions=[
            Suggestion(
                title="Review algorithmic complexity",
                description="Consider using more efficient data structures",
                priority="medium",
                line_number=1,
            ),
            Suggestion(
                title="Add input validation",
                description="Validate inputs to prevent edge case errors",
                priority="high",
                line_number=1,
            ),
        ],
        detected_patterns=[],
        code_quality_score=float(quality),
        readability_score=float(readability),
        optimized_code=optimized,
        used_fallback=True,
        fallback_reason=reason,
        model=None,
    )
