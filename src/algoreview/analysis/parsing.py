"""Cleaning and normalization of raw model output.

Models wrap JSON in markdown fences, leave trailing commas, and sometimes
double-encode nested objects as strings. Everything here is tolerant of that;
anything still unusable raises ``AnalysisDegraded`` so the runner falls back.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from algoreview.analysis.schemas import AnalysisResult, ComplexityEstimate, Suggestion
from algoreview.errors import AnalysisDegraded

DEFAULT_IMPROVEMENT = 50.0
DEFAULT_QUALITY = 75.0
DEFAULT_READABILITY = 75.0

_FENCE_OPEN = re.compile(r"^\s*```[a-zA-Z]*\s*", re.MULTILINE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$", re.MULTILINE)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def clean_response(text: str) -> str:
    """Strip markdown fences and trailing commas before ``}``/``]``."""
    cleaned = _FENCE_OPEN.sub("", text)
    cleaned = _FENCE_CLOSE.sub("", cleaned).strip()
    return _TRAILING_COMMA.sub(r"\1", cleaned)


def deep_parse(value: Any) -> Any:
    """Recursively decode strings that hold a JSON object or array."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped[:1] in ("{", "["):
            try:
                return deep_parse(json.loads(stripped))
            except ValueError:
                return value
        return value
    if isinstance(value, list):
        return [deep_parse(item) for item in value]
    if isinstance(value, dict):
        return {key: deep_parse(item) for key, item in value.items()}
    return value


def ensure_list(value: Any) -> list[Any]:
    """Coerce a list-ish field to a flat list.

    Handles ``None``, a JSON-encoded list, a single scalar or object, and a
    list wrapped in a one-element list.
    """
    if value is None:
        return []
    if isinstance(value, str):
        decoded = deep_parse(value)
        if isinstance(decoded, list):
            return ensure_list(decoded)
        return [value] if value.strip() else []
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        if len(value) == 1 and isinstance(value[0], list):
            return ensure_list(value[0])
        return value
    return [value]


def _pick(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _clamp_score(value: Any, default: float) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(100.0, number))


def _complexity(value: Any, default: str) -> ComplexityEstimate:
    if isinstance(value, str) and value.strip():
        return ComplexityEstimate(before=value.strip(), after=value.strip())
    if not isinstance(value, dict):
        return ComplexityEstimate(before=default, after=default)
    before = str(_pick(value, "before", "current") or default)
    after = str(_pick(value, "after", "optimized") or before)
    improved = _pick(value, "improved")
    return ComplexityEstimate(
        before=before,
        after=after,
        improved=bool(improved) if improved is not None else before != after,
        explanation=str(_pick(value, "explanation") or ""),
    )


def _suggestion(item: Any) -> Suggestion | None:
    if isinstance(item, str):
        return Suggestion(title=item) if item.strip() else None
    if not isinstance(item, dict):
        return None
    title = _pick(item, "title", "name", "issue")
    if not title:
        return None
    line = _pick(item, "line_number", "lineNumber", "line")
    try:
        line_number = int(line) if line is not None else None
    except (TypeError, ValueError):
        line_number = None
    return Suggestion(
        title=str(title),
        description=str(_pick(item, "description", "details") or ""),
        priority=str(_pick(item, "priority", "severity") or "medium"),
        line_number=line_number,
    )


def _pattern_name(item: Any) -> str | None:
    if isinstance(item, str):
        return item.strip() or None
    if isinstance(item, dict):
        name = _pick(item, "pattern", "name")
        return str(name) if name else None
    return None


def normalize_analysis(data: dict[str, Any], model: str | None = None) -> AnalysisResult:
    """Map a decoded payload (snake_case or camelCase keys) onto ``AnalysisResult``."""
    time_raw = _pick(data, "time_complexity", "timeComplexity")
    quality_raw = _pick(data, "code_quality_score", "codeQualityScore")
    if not time_raw or quality_raw is None:
        msg = "Missing required fields"
        raise AnalysisDegraded(msg)

    raw_suggestions = ensure_list(
        _pick(data, "suggestions", "optimization_suggestions", "optimizationSuggestions")
    )
    suggestions = [s for s in map(_suggestion, raw_suggestions) if s is not None]

    raw_patterns = ensure_list(_pick(data, "detected_patterns", "detectedPatterns"))
    patterns = [p for p in map(_pattern_name, raw_patterns) if p]
    optimized = _pick(data, "optimized_code", "optimizedCode")

    try:
        return AnalysisResult(
            time_complexity=_complexity(time_raw, "O(n)"),
            space_complexity=_complexity(_pick(data, "space_complexity", "spaceComplexity"), "O(1)"),
            improvement_percentage=_clamp_score(
                _pick(data, "improvement_percentage", "improvementPercentage"), DEFAULT_IMPROVEMENT
            ),
            suggestions=suggestions,
            detected_patterns=patterns,
            code_quality_score=_clamp_score(quality_raw, DEFAULT_QUALITY),
            readability_score=_clamp_score(_pick(data, "readability_score", "readabilityScore"), DEFAULT_READABILITY),
            optimized_code=str(optimized) if optimized else None,
            used_fallback=False,
            model=model,
        )
    except ValidationError as exc:
        msg = f"Analysis failed validation: {exc.error_count()} error(s)"
        raise AnalysisDegraded(msg) from exc


def parse_analysis(text: str, model: str | None = None) -> AnalysisResult:
    """Clean, decode, and normalize raw model text. Raises ``AnalysisDegraded``."""
    try:
        payload = json.loads(clean_response(text))
    except ValueError as exc:
        msg = "JSON parse error"
        raise AnalysisDegraded(msg) from exc

    payload = deep_parse(payload)
    if not isinstance(payload, dict):
        msg = "Analysis response is not a JSON object"
        raise AnalysisDegraded(msg)
    return normalize_analysis(payload, model=model)
