"""Sampler — bounded, randomized selection of already-scored submissions.

For each category: over-fetch a candidate pool from the submission store,
shuffle it with the injected RNG, keep the first ``per_category``. Pools are
fetched concurrently but shuffled in category order, so a seeded RNG gives a
reproducible sample regardless of which fetch finishes first.

An empty category is a SamplingShortfall: logged as a warning and skipped.
Store errors propagate (they fail the run).
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field

from arena_audit.audit.interfaces import SubmissionStore
from arena_audit.models.submission import SubmissionRef

logger = logging.getLogger(__name__)


@dataclass
class SampleReport:
    """What the sampler selected, and where it came up short."""

    submissions: list[SubmissionRef] = field(default_factory=list)
    per_category: dict[str, int] = field(default_factory=dict)
    shortfalls: list[str] = field(default_factory=list)  # categories with zero candidates

    def __len__(self) -> int:
        return len(self.submissions)


class Sampler:
    """Selects up to ``per_category`` submissions from each category.

    Usage:
        sampler = Sampler(store, overfetch_factor=10, rng=random.Random(42))
        report = await sampler.sample(["ai-ml", "cloud-devops"], per_category=5)
    """

    def __init__(
        self,
        store: SubmissionStore,
        overfetch_factor: int = 10,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.overfetch_factor = max(1, overfetch_factor)
        self.rng = rng or random.Random()

    async def sample(self, categories: list[str], per_category: int) -> SampleReport:
        """Sample at most ``len(categories) * per_category`` submissions."""
        report = SampleReport()
        categories = list(dict.fromkeys(categories))
        if per_category <= 0 or not categories:
            return report

        pool_size = per_category * self.overfetch_factor
        pools = await asyncio.gather(
            *[self.store.list_scored_submissions(c, pool_size) for c in categories]
        )

        for category, pool in zip(categories, pools):
            if not pool:
                logger.warning("Sampling shortfall: no scored submissions found for %s", category)
                report.shortfalls.append(category)
                report.per_category[category] = 0
                continue

            candidates = list(pool)
            self.rng.shuffle(candidates)
            selected = candidates[:per_category]
            report.submissions.extend(selected)
            report.per_category[category] = len(selected)

            if len(selected) < per_category:
                logger.info(
                    "Sampled %d/%d %s submissions (pool exhausted)",
                    len(selected), per_category, category,
                )
            else:
                logger.info("Sampled %d %s submissions", len(selected), category)

        return report
