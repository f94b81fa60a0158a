"""Deviation threshold tables — (category, difficulty) → ordered severity bands.

Tables are immutable and injected into the classifier, so tests can build
their own without touching module state. Each resolved list is ascending by
threshold and always ends with a catch-all ``critical`` band at infinity.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from types import MappingProxyType

from arena_audit.engines.deviation.classification_models import ThresholdBand

FALLBACK_DIFFICULTY = "medium"

_ORDER = ("none", "minor", "major")

# Category-specific upper bounds (inclusive) for none / minor / major.
# Anything above the major bound is critical.
CATEGORY_BOUNDS: dict[str, dict[str, tuple[float, float, float]]] = {
    "fullstack-dev": {
        "easy": (3, 8, 15),
        "medium": (5, 12, 20),
        "hard": (8, 15, 25),
        "expert": (10, 18, 30),
    },
    "cloud-devops": {
        "easy": (4, 10, 18),
        "medium": (6, 14, 22),
        "hard": (10, 18, 28),
        "expert": (12, 20, 32),
    },
    "data-analytics": {
        "easy": (5, 12, 20),
        "medium": (7, 15, 25),
        "hard": (10, 18, 28),
        "expert": (12, 20, 30),
    },
    "ai-ml": {
        "easy": (4, 10, 18),
        "medium": (6, 14, 22),
        "hard": (8, 16, 26),
        "expert": (10, 18, 28),
    },
}

# Used for categories without a specific entry
DEFAULT_BOUNDS: dict[str, tuple[float, float, float]] = {
    "easy": (5, 12, 20),
    "medium": (7, 15, 25),
    "hard": (10, 18, 28),
    "expert": (12, 20, 30),
}


def build_bands(bounds: Mapping[str, float] | tuple[float, ...]) -> tuple[ThresholdBand, ...]:
    """Build an ordered band list, appending the critical catch-all.

    Accepts either a ``(none, minor, major)`` tuple or a mapping keyed by
    severity. Raises ValueError unless thresholds strictly ascend.
    """
    if isinstance(bounds, Mapping):
        pairs = [(sev, float(bounds[sev])) for sev in _ORDER if sev in bounds]
    else:
        pairs = list(zip(_ORDER, (float(b) for b in bounds)))

    bands = [ThresholdBand(severity=sev, threshold=t) for sev, t in pairs]
    for prev, cur in zip(bands, bands[1:]):
        if cur.threshold <= prev.threshold:
            raise ValueError(
                f"Thresholds must strictly ascend: {prev.severity}={prev.threshold} "
                f">= {cur.severity}={cur.threshold}"
            )
    bands.append(ThresholdBand(severity="critical", threshold=math.inf))
    return tuple(bands)


class ThresholdTable:
    """Immutable (category, difficulty) → band list lookup with a default table.

    Usage:
        table = ThresholdTable.default()
        bands = table.resolve("ai-ml", "expert")

        custom = ThresholdTable({}, {"medium": {"none": 5, "minor": 12, "major": 20}})
    """

    def __init__(
        self,
        category_tables: Mapping[str, Mapping[str, Mapping[str, float] | tuple[float, ...]]],
        default_table: Mapping[str, Mapping[str, float] | tuple[float, ...]],
        fallback_difficulty: str = FALLBACK_DIFFICULTY,
    ) -> None:
        if fallback_difficulty not in default_table:
            raise ValueError(f"Default table has no '{fallback_difficulty}' row")
        self._categories = MappingProxyType({
            category: MappingProxyType({d: build_bands(b) for d, b in rows.items()})
            for category, rows in category_tables.items()
        })
        self._default = MappingProxyType({d: build_bands(b) for d, b in default_table.items()})
        self._fallback_difficulty = fallback_difficulty

    @classmethod
    def default(cls) -> ThresholdTable:
        return cls(CATEGORY_BOUNDS, DEFAULT_BOUNDS)

    @property
    def categories(self) -> list[str]:
        return list(self._categories)

    def resolve(self, category: str, difficulty: str) -> tuple[ThresholdBand, ...]:
        """Return the ordered bands for a category/difficulty pair.

        Falls back to the default table for unknown categories, and to the
        default table's fallback row for unknown difficulties. Never raises.
        """
        rows = self._categories.get(category)
        if rows is not None and difficulty in rows:
            return rows[difficulty]
        return self._default.get(difficulty) or self._default[self._fallback_difficulty]


DEFAULT_THRESHOLD_TABLE = ThresholdTable.default()


def resolve_thresholds(
    category: str,
    difficulty: str,
    table: ThresholdTable = DEFAULT_THRESHOLD_TABLE,
) -> tuple[ThresholdBand, ...]:
    """Module-level convenience wrapper around ``ThresholdTable.resolve``."""
    return table.resolve(category, difficulty)
