"""Deviation engines — deterministic classification of score drift."""

from arena_audit.engines.deviation.classification_models import (
    ClassificationResult,
    DeviationPatterns,
    ThresholdBand,
)
from arena_audit.engines.deviation.classifier import DeviationClassifier, analyze_patterns
from arena_audit.engines.deviation.thresholds import ThresholdTable, resolve_thresholds

__all__ = [
    "ClassificationResult",
    "DeviationClassifier",
    "DeviationPatterns",
    "ThresholdBand",
    "ThresholdTable",
    "analyze_patterns",
    "resolve_thresholds",
]
