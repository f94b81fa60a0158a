"""Drift audit pipeline — one batch run end to end.

    start → sample → process → finish → evaluate → notify

Only errors outside the per-item loop (sampling, creating or finalizing the
run) fail the run. A shutdown request stops new items from being picked up
and fails the run with partial counts preserved. Notification is
fire-and-forget and happens after the run is terminal.
"""

from __future__ import annotations

import asyncio
import logging
import random

from sqlalchemy.engine import Engine

from arena_audit.audit.aggregator import RunAggregator
from arena_audit.audit.alerting import AlertDecision, AlertDecisionEngine, AuditTrend, calculate_audit_trend
from arena_audit.audit.interfaces import AuditPersistence, ScoringOracle, SubmissionStore
from arena_audit.audit.rescorer import RescorerAdapter
from arena_audit.audit.sampler import Sampler
from arena_audit.config import AlertPolicy, HealthWeights, RescoreFailurePolicy, Settings, settings
from arena_audit.engines.deviation import DeviationClassifier
from arena_audit.models.audit import AuditRun
from arena_audit.notifications.notifier import AuditNotifier

logger = logging.getLogger(__name__)

SHUTDOWN_MESSAGE = "Audit interrupted by shutdown before all submissions were processed"
TREND_WINDOW = 6


class DriftAuditPipeline:
    """Runs scoring-drift audits against injected collaborators.

    Usage:
        pipeline = DriftAuditPipeline.from_settings()
        run, decision = await pipeline.run(trigger="scheduled")
    """

    def __init__(
        self,
        submission_store: SubmissionStore,
        oracle: ScoringOracle,
        persistence: AuditPersistence,
        notifier: AuditNotifier | None = None,
        classifier: DeviationClassifier | None = None,
        alert_engine: AlertDecisionEngine | None = None,
        categories: list[str] | None = None,
        per_category: int = 5,
        overfetch_factor: int = 10,
        concurrency: int = 4,
        rescore_timeout: float = 30.0,
        failure_policy: RescoreFailurePolicy = "fallback_original",
        seed: int | None = None,
    ) -> None:
        self.submission_store = submission_store
        self.oracle = oracle
        self.persistence = persistence
        self.notifier = notifier or AuditNotifier()
        self.classifier = classifier or DeviationClassifier()
        self.alert_engine = alert_engine or AlertDecisionEngine()
        self.categories = list(categories) if categories is not None else settings.category_list()
        self.per_category = per_category
        self.overfetch_factor = overfetch_factor
        self.concurrency = concurrency
        self.rescore_timeout = rescore_timeout
        self.failure_policy = failure_policy
        self.seed = seed

        self._active: RunAggregator | None = None
        self._shutdown_requested = False
        self.last_run: AuditRun | None = None

    @classmethod
    def from_settings(cls, s: Settings | None = None, db_engine: Engine | None = None, **overrides) -> DriftAuditPipeline:
        """Wire the production collaborators (SQL stores, Claude oracle, Slack + email)."""
        from arena_audit.db.audit_store import AuditStore
        from arena_audit.integrations.scoring_oracle import LLMScoringOracle
        from arena_audit.integrations.submission_store import SqlSubmissionStore
        from arena_audit.notifications.email_sender import EmailDispatcher
        from arena_audit.notifications.slack import SlackWebhookDispatcher

        s = s or settings
        kwargs = dict(
            submission_store=SqlSubmissionStore(db_engine),
            oracle=LLMScoringOracle(),
            persistence=AuditStore(db_engine),
            notifier=AuditNotifier(
                [SlackWebhookDispatcher(s.slack_webhook_url), EmailDispatcher()],
                frontend_url=s.frontend_url,
            ),
            alert_engine=AlertDecisionEngine(HealthWeights.from_settings(s), AlertPolicy.from_settings(s)),
            categories=s.category_list(),
            per_category=s.audit_per_category,
            overfetch_factor=s.audit_overfetch_factor,
            concurrency=s.audit_worker_concurrency,
            rescore_timeout=s.rescore_timeout_seconds,
            failure_policy=s.rescore_failure_policy,
            seed=s.audit_random_seed,
        )
        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)

    # === Run ===

    async def run(self, trigger: str = "manual") -> tuple[AuditRun, AlertDecision]:
        """Execute one audit run. Never raises for run failures; check run.status.

        If the calling task is cancelled mid-run, the run is still recorded
        as failed with its partial counts and a summary is scheduled before
        the cancellation propagates.
        """
        aggregator = RunAggregator(
            persistence=self.persistence,
            rescorer=RescorerAdapter(self.oracle, timeout_seconds=self.rescore_timeout),
            classifier=self.classifier,
            concurrency=self.concurrency,
            failure_policy=self.failure_policy,
            trigger=trigger,
        )
        self._active = aggregator
        if self._shutdown_requested:
            aggregator.request_shutdown()
        logger.info(
            "Starting scoring-drift audit (trigger=%s, categories=%s, per_category=%d, concurrency=%d)",
            trigger, ",".join(self.categories), self.per_category, self.concurrency,
        )

        try:
            aggregator.start()
            sampler = Sampler(self.submission_store, self.overfetch_factor, random.Random(self.seed))
            report = await sampler.sample(self.categories, self.per_category)
            logger.info("Sampled %d submissions across %d categories", len(report), len(report.per_category))

            await aggregator.process(report.submissions)

            if aggregator.shutdown_requested:
                run = aggregator.fail(SHUTDOWN_MESSAGE, preserve_counts=True)
            else:
                run = aggregator.finish()
        except asyncio.CancelledError:
            logger.warning("Audit run cancelled; recording partial results")
            run = aggregator.fail(SHUTDOWN_MESSAGE, preserve_counts=True)
            self._conclude(run)
            raise
        except Exception as e:
            logger.error("Audit run failed: %s", e, exc_info=True)
            run = aggregator.fail(f"{type(e).__name__}: {e}")
        finally:
            self._active = None

        return run, self._conclude(run)

    def _conclude(self, run: AuditRun) -> AlertDecision:
        self.last_run = run
        decision = self.alert_engine.evaluate(run)
        self.notifier.notify(run, decision, self._trend())
        return decision

    def request_shutdown(self) -> None:
        """Ask the active run to stop taking new items. Safe to call from a signal handler.

        Sticky: a run started afterwards fails straight away with zero items processed.
        """
        self._shutdown_requested = True
        if self._active is not None:
            self._active.request_shutdown()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def _trend(self) -> AuditTrend | None:
        list_recent = getattr(self.persistence, "list_recent_runs", None)
        if list_recent is None:
            return None
        try:
            runs = [r for r in list_recent(limit=TREND_WINDOW) if r.status == "completed"]
        except Exception as e:
            logger.warning("Could not load recent runs for trend: %s", e)
            return None
        return calculate_audit_trend(runs, self.alert_engine.weights)
