"""Structured analysis result stored on a completed job."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ComplexityEstimate(BaseModel):
    before: str = "O(n)"
    after: str = "O(n)"
    improved: bool = False
    explanation: str = ""


class Suggestion(BaseModel):
    title: str
    description: str = ""
    priority: str = "medium"
    line_number: int | None = None


class AnalysisResult(BaseModel):
    """Normalized output of either the external analyzer or the local fallback.

    ``used_fallback`` distinguishes a real analysis from the heuristic one;
    ``fallback_reason`` says why the external capability was bypassed.
    """

    time_complexity: ComplexityEstimate
    space_complexity: ComplexityEstimate = Field(
        default_factory=lambda: ComplexityEstimate(before="O(1)", after="O(1)")
    )
    improvement_percentage: float = Field(default=50.0, ge=0, le=100)
    suggestions: list[Suggestion] = []
    detected_patterns: list[str] = []
    code_quality_score: float = Field(default=75.0, ge=0, le=100)
    readability_score: float = Field(default=75.0, ge=0, le=100)
    optimized_code: str | None = None
    used_fallback: bool = False
    fallback_reason: str | None = None
    model: str | None = None
