"""Deviation Classifier — severity, confidence, risk factors and action for a score pair.

Pure and side-effect free. Thresholds and category sensitivity are injected
at construction time; unknown categories and difficulties resolve through
the default table and never raise.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from arena_audit.engines.deviation.classification_models import (
    ClassificationResult,
    DeviationPatterns,
    GroupPattern,
    ThresholdBand,
)
from arena_audit.engines.deviation.thresholds import DEFAULT_THRESHOLD_TABLE, ThresholdTable
from arena_audit.models.audit import AuditResult, Confidence, Severity, SuggestedAction
from arena_audit.models.submission import SubmissionContext


# Minor deviations in these categories are flagged instead of allowed
HIGH_SENSITIVITY_CATEGORIES: frozenset[str] = frozenset({"ai-ml"})

# Category → risk factor label when magnitude exceeds SENSITIVE_CATEGORY_MAGNITUDE
CATEGORY_RISK_FACTORS: dict[str, str] = {
    "ai-ml": "AI/ML evaluation complexity",
    "data-analytics": "Subjective data analytics evaluation",
}

CATEGORY_CONTEXTS: dict[str, str] = {
    "fullstack-dev": (
        "Full-stack development evaluation considers both frontend and backend aspects. "
        "{difficulty} tasks require appropriate complexity in application architecture "
        "and user experience."
    ),
    "cloud-devops": (
        "Cloud/DevOps evaluation focuses on infrastructure as code, containerization, and "
        "deployment automation. {difficulty} tasks require appropriate configuration "
        "management and CI/CD pipelines."
    ),
    "data-analytics": (
        "Data analytics evaluation considers methodology, analysis quality, and insights "
        "generation. {difficulty} tasks require appropriate statistical rigor and "
        "analytical depth."
    ),
    "ai-ml": (
        "AI/ML evaluation considers model selection, implementation quality, and "
        "problem-solving approach. {difficulty} tasks require appropriate algorithmic "
        "complexity and technical sophistication."
    ),
}

HIGH_MAGNITUDE = 20
EXPERT_MAGNITUDE = 10
SENSITIVE_CATEGORY_MAGNITUDE = 15
MIN_CODE_LENGTH = 100  # characters
MIN_TIME_SPENT = 10  # minutes
DEFAULT_RISK_FACTOR = "Standard deviation analysis"


class DeviationClassifier:
    """Classifies the disagreement between an original and a fresh score.

    Usage:
        classifier = DeviationClassifier()
        result = classifier.classify(88, 52, "ai-ml", "expert")
        result.severity          # "critical"
        result.suggested_action  # "escalate"
    """

    def __init__(
        self,
        table: ThresholdTable = DEFAULT_THRESHOLD_TABLE,
        high_sensitivity_categories: Iterable[str] = HIGH_SENSITIVITY_CATEGORIES,
        category_risk_factors: Mapping[str, str] | None = None,
    ) -> None:
        self.table = table
        self.high_sensitivity_categories = frozenset(high_sensitivity_categories)
        self.category_risk_factors = dict(
            CATEGORY_RISK_FACTORS if category_risk_factors is None else category_risk_factors
        )

    def classify(
        self,
        original: float,
        new: float,
        category: str,
        difficulty: str,
        context: SubmissionContext | None = None,
    ) -> ClassificationResult:
        """Classify one score pair.

        Args:
            original: Originally recorded score.
            new: Freshly computed score.
            category: Skill area of the task.
            difficulty: Task difficulty (easy/medium/hard/expert).
            context: Optional submission signals (time spent, code length).

        Returns:
            ClassificationResult with severity, confidence, action and risk factors.
        """
        magnitude = abs(new - original)
        bands = self.table.resolve(category, difficulty)
        severity = self.severity_for(magnitude, bands)

        return ClassificationResult(
            severity=severity,
            magnitude=magnitude,
            confidence=self.confidence_for(magnitude),
            suggested_action=self.suggest_action(severity, category, difficulty),
            risk_factors=self.risk_factors(original, new, magnitude, category, difficulty, context),
            critical_issue=severity == "critical",
            reasoning=self._reasoning(original, new, magnitude, severity, bands, category, difficulty),
            category_context=self._category_context(category, difficulty),
            complexity_context=self._complexity_context(difficulty, context),
        )

    @staticmethod
    def severity_for(magnitude: float, bands: Iterable[ThresholdBand]) -> Severity:
        """First band whose threshold >= magnitude; critical if none match."""
        for band in bands:
            if magnitude <= band.threshold:
                return band.severity
        return "critical"

    @staticmethod
    def confidence_for(magnitude: float) -> Confidence:
        # Clear cases at both ends; the middle range is ambiguous
        if magnitude <= 5 or magnitude >= 30:
            return "high"
        if magnitude <= 15:
            return "medium"
        return "low"

    def suggest_action(self, severity: Severity, category: str, difficulty: str) -> SuggestedAction:
        if severity == "none":
            return "allow"
        if severity == "minor":
            if difficulty == "expert" or category in self.high_sensitivity_categories:
                return "flag_for_review"
            return "allow"
        if severity == "major":
            return "flag_for_review"
        return "escalate"

    def risk_factors(
        self,
        original: float,
        new: float,
        magnitude: float,
        category: str,
        difficulty: str,
        context: SubmissionContext | None = None,
    ) -> list[str]:
        """Independent heuristic checks; never returns an empty list."""
        factors: list[str] = []

        if magnitude > HIGH_MAGNITUDE:
            factors.append("High score discrepancy")

        category_factor = self.category_risk_factors.get(category)
        if category_factor and magnitude > SENSITIVE_CATEGORY_MAGNITUDE:
            factors.append(category_factor)

        if difficulty == "expert" and magnitude > EXPERT_MAGNITUDE:
            factors.append("Expert-level task complexity")

        if context is not None:
            if context.code_length and context.code_length < MIN_CODE_LENGTH:
                factors.append("Minimal code submission")
            if context.time_spent_minutes and context.time_spent_minutes < MIN_TIME_SPENT:
                factors.append("Very short completion time")

        if original > 90 and new < 60:
            factors.append("Potential score inflation")
        if original < 30 and new > 70:
            factors.append("Potential score deflation")

        return factors or [DEFAULT_RISK_FACTOR]

    @staticmethod
    def _reasoning(
        original: float,
        new: float,
        magnitude: float,
        severity: Severity,
        bands: tuple[ThresholdBand, ...],
        category: str,
        difficulty: str,
    ) -> str:
        direction = "higher" if original > new else "lower"
        if severity == "none":
            return (
                f"Scores are within acceptable variance range (±{bands[0].threshold:g} points "
                f"for {category} {difficulty} tasks). No significant deviation detected."
            )
        if severity == "minor":
            return (
                f"Minor deviation of {magnitude:g} points detected. Original score is {direction} "
                "than the re-scored value. This may indicate slight differences in evaluation "
                "criteria or subjective assessment factors."
            )
        if severity == "major":
            return (
                f"Major deviation of {magnitude:g} points detected. Original score is {direction} "
                "than the re-scored value. This suggests significant differences in evaluation "
                "approach or potential scoring bias. Manual review recommended."
            )
        return (
            f"Critical deviation of {magnitude:g} points detected. Original score is {direction} "
            "than the re-scored value. This represents a substantial disagreement that requires "
            "immediate investigation and potential scoring system review."
        )

    @staticmethod
    def _category_context(category: str, difficulty: str) -> str:
        template = CATEGORY_CONTEXTS.get(category)
        if template is None:
            return f"Standard evaluation criteria for {category} tasks at {difficulty} difficulty level."
        return template.format(difficulty=difficulty.capitalize())

    @staticmethod
    def _complexity_context(difficulty: str, context: SubmissionContext | None) -> str:
        parts = [f"Task difficulty: {difficulty}"]
        if context is not None:
            if context.time_spent_minutes:
                parts.append(f"Completion time: {context.time_spent_minutes:g} minutes")
            if context.code_length:
                parts.append(f"Code length: {context.code_length} characters")
            if context.complexity:
                parts.append(f"Submission complexity: {context.complexity}")
        return ", ".join(parts)


def analyze_patterns(results: Iterable[AuditResult]) -> DeviationPatterns:
    """Group classified results by category and difficulty.

    Returns average deviation per bucket and a human-readable list of
    critical-issue messages.
    """
    by_category: dict[str, GroupPattern] = {}
    by_difficulty: dict[str, GroupPattern] = {}
    critical = 0

    for r in results:
        for key, buckets in ((r.category, by_category), (r.difficulty, by_difficulty)):
            bucket = buckets.setdefault(key, GroupPattern())
            bucket.count += 1
            bucket.total_deviation += r.deviation
            bucket.avg_deviation = bucket.total_deviation / bucket.count
        if r.severity == "critical":
            critical += 1

    issues: list[str] = []
    if critical:
        issues.append(f"{critical} critical deviations detected requiring immediate attention")

    return DeviationPatterns(
        category_patterns=by_category,
        difficulty_patterns=by_difficulty,
        critical_issues=issues,
    )
