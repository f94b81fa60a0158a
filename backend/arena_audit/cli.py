"""arena-audit — run the scoring-drift audit from the command line.

Usage:
    # One audit run with settings from .env / environment
    arena-audit

    # Two categories, 10 each, reproducible sample
    arena-audit --categories ai-ml,cloud-devops --per-category 10 --seed 42

    # Keep running every AUDIT_INTERVAL_HOURS
    arena-audit --schedule

Exit code: 0 when the run completed, 1 when it failed or was interrupted.
SIGINT/SIGTERM stop new submissions from being picked up; the run is then
recorded as failed with its partial counts.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from arena_audit.audit.alerting import AlertDecision, health_score_label
from arena_audit.audit.pipeline import DriftAuditPipeline
from arena_audit.audit.scheduler import AuditScheduler
from arena_audit.config import settings
from arena_audit.db.database import create_db_and_tables
from arena_audit.engines.deviation import analyze_patterns
from arena_audit.models.audit import AuditRun

logger = logging.getLogger("arena_audit.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="arena-audit",
        description="Re-score a random sample of scored submissions and report scoring drift",
    )
    parser.add_argument("--categories", default=None,
                        help="Comma-separated categories (default: AUDIT_CATEGORIES)")
    parser.add_argument("--per-category", type=int, default=None,
                        help="Submissions sampled per category (default: AUDIT_PER_CATEGORY)")
    parser.add_argument("--concurrency", type=int, default=None,
                        help="Concurrent re-scoring calls, 1-8 (default: AUDIT_WORKER_CONCURRENCY)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for a reproducible sample")
    parser.add_argument("--policy", choices=["fallback_original", "inconclusive"], default=None,
                        help="What to do when re-scoring a submission fails")
    parser.add_argument("--schedule", action="store_true",
                        help="Run now, then every AUDIT_INTERVAL_HOURS until interrupted")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def print_summary(run: AuditRun, decision: AlertDecision, results: list | None = None) -> None:
    """Human-readable run summary on stdout."""
    print()
    print("=" * 60)
    print(f"ARENA AUDIT {run.status.upper()}: {run.id}")
    print("=" * 60)
    print(f"  Trigger:            {run.trigger}")
    print(f"  Duration:           {run.duration_ms}ms")
    print(f"  Sampled:            {run.sample_size}")
    print(f"  Processed:          {run.total_processed}")
    print(f"  None / Minor:       {run.none_count} / {run.minor_count}")
    print(f"  Major / Critical:   {run.major_count} / {run.critical_count}")
    print(f"  Avg deviation:      {run.average_deviation:.2f}")
    print(f"  Critical issues:    {run.critical_issues_count}")
    print(f"  Failed items:       {run.failed_item_count}")
    print(f"  Rescore failures:   {run.rescore_failure_count}")
    print(f"  Inconclusive:       {run.inconclusive_count}")
    print(f"  Health score:       {decision.health_score} ({health_score_label(decision.health_score)})")
    print(f"  Composite status:   {decision.status}")
    print(f"  Alert:              {'YES' if decision.should_alert else 'no'}")
    for reason in decision.reasons:
        print(f"    - {reason}")
    if run.error_message:
        print(f"  Error:              {run.error_message}")

    if results:
        patterns = analyze_patterns(results)
        print("  By category:")
        for category, p in sorted(patterns.category_patterns.items()):
            print(f"    {category:<16} {p.count:>3} submissions, avg deviation {p.avg_deviation:.1f}")
        for issue in patterns.critical_issues:
            print(f"  ! {issue}")
    print()


def _install_signal_handlers(callback) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, callback)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform's event loop
            logger.debug("Cannot install handler for %s", sig)


async def run_audit(args: argparse.Namespace) -> int:
    create_db_and_tables()

    categories = None
    if args.categories:
        categories = [c.strip() for c in args.categories.split(",") if c.strip()]
    concurrency = None
    if args.concurrency is not None:
        concurrency = max(1, min(8, args.concurrency))

    pipeline = DriftAuditPipeline.from_settings(
        categories=categories,
        per_category=args.per_category,
        concurrency=concurrency,
        seed=args.seed,
        failure_policy=args.policy,
    )

    if args.schedule:
        scheduler = AuditScheduler(
            pipeline,
            interval_hours=settings.audit_interval_hours,
            enabled=settings.audit_schedule_enabled,
            run_immediately=True,
        )
        _install_signal_handlers(scheduler.stop)
        await scheduler.start()
        await scheduler.wait()
        await pipeline.notifier.drain(timeout=settings.notification_timeout_seconds)
        status = scheduler.get_status()
        logger.info(
            "Scheduler exited: %d completed, %d failed",
            status["runs_completed"], status["runs_failed"],
        )
        return 0 if status["last_status"] in (None, "completed") else 1

    _install_signal_handlers(pipeline.request_shutdown)
    run, decision = await pipeline.run(trigger="manual")

    results = None
    list_results = getattr(pipeline.persistence, "list_results", None)
    if list_results is not None and run.total_processed:
        try:
            results = list_results(run.id)
        except Exception as e:
            logger.warning("Could not load results for run %s: %s", run.id, e)
    print_summary(run, decision, results)

    await pipeline.notifier.drain(timeout=settings.notification_timeout_seconds)
    return 0 if run.status == "completed" else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    for noisy in ("httpx", "httpcore", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    if args.per_category is not None and args.per_category < 1:
        build_parser().error("--per-category must be >= 1")
    return asyncio.run(run_audit(args))


if __name__ == "__main__":
    raise SystemExit(main())
