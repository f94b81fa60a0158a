"""Pydantic models for deviation classification.

Shared by the threshold table, the classifier, and the run aggregator.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from arena_audit.models.audit import Confidence, Severity, SuggestedAction


class ThresholdBand(BaseModel):
    """One (severity, upper bound) pair; a magnitude <= threshold falls in this band."""

    model_config = {"frozen": True}

    severity: Severity
    threshold: float


class ClassificationResult(BaseModel):
    """Outcome of classifying one (original, new) score pair."""

    severity: Severity
    magnitude: float = Field(ge=0.0)
    confidence: Confidence
    suggested_action: SuggestedAction
    risk_factors: list[str] = Field(default_factory=list)
    critical_issue: bool = False
    reasoning: str = ""
    category_context: str = ""
    complexity_context: str = ""


class GroupPattern(BaseModel):
    """Average deviation for one category or difficulty bucket."""

    count: int = 0
    total_deviation: float = 0.0
    avg_deviation: float = 0.0


class DeviationPatterns(BaseModel):
    """Cross-result patterns for a batch of classified results."""

    category_patterns: dict[str, GroupPattern] = Field(default_factory=dict)
    difficulty_patterns: dict[str, GroupPattern] = Field(default_factory=dict)
    critical_issues: list[str] = Field(default_factory=list)
