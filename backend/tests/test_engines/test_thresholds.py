"""Tests for threshold tables and severity boundaries."""

import math
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

import pytest
from arena_audit.engines.deviation import DeviationClassifier, ThresholdTable, resolve_thresholds
from arena_audit.engines.deviation.thresholds import DEFAULT_THRESHOLD_TABLE, build_bands

# === Severity boundaries ({none: 5, minor: 12, major: 20, critical: inf}) ===


@pytest.fixture
def bands():
    return build_bands({"none": 5, "minor": 12, "major": 20})


def test_boundary_at_none_threshold_is_none(bands):
    assert DeviationClassifier.severity_for(5, bands) == "none"
    print("  PASS: boundary_at_none_threshold_is_none")


def test_just_above_none_threshold_is_minor(bands):
    assert DeviationClassifier.severity_for(5.01, bands) == "minor"
    print("  PASS: just_above_none_threshold_is_minor")


def test_boundary_at_major_threshold_is_major(bands):
    assert DeviationClassifier.severity_for(20, bands) == "major"
    print("  PASS: boundary_at_major_threshold_is_major")


def test_just_above_major_threshold_is_critical(bands):
    assert DeviationClassifier.severity_for(20.01, bands) == "critical"
    print("  PASS: just_above_major_threshold_is_critical")


def test_zero_deviation_is_none(bands):
    assert DeviationClassifier.severity_for(0, bands) == "none"


def test_boundaries_through_classifier_default_easy_row():
    # Unknown category resolves to the default table; its easy row is (5, 12, 20)
    classifier = DeviationClassifier()
    assert classifier.classify(80, 75, "unlisted", "easy").severity == "none"
    assert classifier.classify(80, 74.99, "unlisted", "easy").severity == "minor"
    assert classifier.classify(80, 60, "unlisted", "easy").severity == "major"
    assert classifier.classify(80, 59.99, "unlisted", "easy").severity == "critical"
    print("  PASS: boundaries_through_classifier_default_easy_row")


# === build_bands ===


def test_build_bands_appends_critical_catch_all():
    result = build_bands((3, 8, 15))
    assert [b.severity for b in result] == ["none", "minor", "major", "critical"]
    assert math.isinf(result[-1].threshold)


def test_build_bands_rejects_non_ascending():
    with pytest.raises(ValueError):
        build_bands((10, 8, 15))
    with pytest.raises(ValueError):
        build_bands({"none": 5, "minor": 5, "major": 20})
    print("  PASS: build_bands_rejects_non_ascending")


# === ThresholdTable resolution ===


def test_category_specific_row():
    result = resolve_thresholds("ai-ml", "expert")
    assert [b.threshold for b in result[:3]] == [10, 18, 28]


def test_cloud_devops_rows_differ_from_default():
    assert [b.threshold for b in resolve_thresholds("cloud-devops", "hard")[:3]] == [10, 18, 28]
    assert [b.threshold for b in resolve_thresholds("cloud-devops", "easy")[:3]] == [4, 10, 18]


def test_unknown_category_uses_default_table():
    assert resolve_thresholds("quantum-basketweaving", "hard") == DEFAULT_THRESHOLD_TABLE.resolve("unlisted", "hard")
    assert [b.threshold for b in resolve_thresholds("unlisted", "hard")[:3]] == [10, 18, 28]


def test_unknown_difficulty_falls_back_to_medium_default():
    result = resolve_thresholds("ai-ml", "legendary")
    assert [b.threshold for b in result[:3]] == [7, 15, 25]
    print("  PASS: unknown_difficulty_falls_back_to_medium_default")


def test_resolve_never_raises_on_empty_inputs():
    assert resolve_thresholds("", "")[-1].severity == "critical"


def test_table_is_isolated_from_source_mapping():
    source = {"medium": {"none": 5, "minor": 12, "major": 20}}
    table = ThresholdTable({}, source)
    source["medium"]["none"] = 1
    assert table.resolve("x", "medium")[0].threshold == 5


def test_table_requires_fallback_row():
    with pytest.raises(ValueError):
        ThresholdTable({}, {"easy": (5, 12, 20)})


def test_injected_table_drives_classifier():
    table = ThresholdTable({"custom": {"medium": (1, 2, 3)}}, {"medium": (5, 12, 20)})
    classifier = DeviationClassifier(table=table)
    assert classifier.classify(50, 54, "custom", "medium").severity == "critical"
    assert classifier.classify(50, 54, "other", "medium").severity == "none"
    assert table.categories == ["custom"]
    print("  PASS: injected_table_drives_classifier")
