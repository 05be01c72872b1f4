"""External code analysis via the Claude API.

The analyzer either returns a normalized ``AnalysisResult`` or raises
``AnalysisDegraded``; choosing the fallback is the runner's job.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import anthropic

from algoreview.analysis.parsing import parse_analysis
from algoreview.analysis.schemas import AnalysisResult
from algoreview.config import Settings
from algoreview.errors import AnalysisDegraded

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert code optimization engineer specialized in data structures and algorithms. "
    "Analyze code for time and space complexity, detect optimization opportunities, identify "
    "algorithmic patterns, and give actionable suggestions. Respond ONLY with valid JSON. "
    "No markdown, explanations, or text outside the JSON object."
)

RESPONSE_SHAPE = """{
  "time_complexity": {"before": "O(n^2)", "after": "O(n)", "improved": true, "explanation": "..."},
  "space_complexity": {"before": "O(n)", "after": "O(1)", "improved": true, "explanation": "..."},
  "improvement_percentage": 85,
  "suggestions": [
    {"title": "...", "description": "...", "priority": "critical|high|medium|low", "line_number": 15}
  ],
  "detected_patterns": ["Two Pointers", "Sliding Window"],
  "code_quality_score": 72,
  "readability_score": 85,
  "optimized_code": "..."
}"""


def build_prompt(code: str, language: str, title: str) -> str:
    return (
        f"Review this {language} code and return your analysis in exactly this JSON shape:\n\n"
        f"{RESPONSE_SHAPE}\n\n"
        "Scores and improvement_percentage are integers from 0 to 100. Give 2-6 suggestions "
        "ordered by impact, and write optimized_code as a complete rewrite with comments "
        "explaining each optimization.\n\n"
        f"Code Title: {title}\n"
        f"Programming Language: {language}\n\n"
        f"Code to analyze:\n```{language.lower()}\n{code}\n```"
    )


class Analyzer(Protocol):
    async def analyze(self, code: str, language: str, title: str) -> AnalysisResult: ...


class AnthropicAnalyzer:
    """Analyze code with Claude. Without an API key every call is degraded."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4000,
        client: Any | None = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.client = client
        if self.client is None and api_key:
            self.client = anthropic.AsyncAnthropic(api_key=api_key)

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def analyze(self, code: str, language: str, title: str) -> AnalysisResult:
        if not self.client:
            msg = "No API key configured"
            raise AnalysisDegraded(msg)

        started = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_prompt(code, language, title)}],
            )
        except anthropic.APIError as exc:
            msg = f"Analysis API error: {exc.__class__.__name__}"
            raise AnalysisDegraded(msg) from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            msg = "Invalid API response format"
            raise AnalysisDegraded(msg)

        logger.info(
            "Claude analysis returned in %.0fms (%d chars)",
            (time.monotonic() - started) * 1000,
            len(text),
        )
        try:
            return parse_analysis(text, model=self.model)
        except AnalysisDegraded:
            logger.warning("Unparseable analysis response: %s", text[:200])
            raise


def build_analyzer(settings: Settings) -> AnthropicAnalyzer:
    return AnthropicAnalyzer(
        api_key=settings.anthropic_api_key or None,
        model=settings.analysis_model,
        max_tokens=settings.analysis_max_tokens,
    )
