"""Tests for the arena-audit command line entry point."""

import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

import pytest
from arena_audit import cli
from arena_audit.audit.pipeline import DriftAuditPipeline
from arena_audit.notifications.notifier import AuditNotifier


def test_parser_accepts_all_options():
    args = cli.build_parser().parse_args([
        "--categories", "ai-ml,cloud-devops",
        "--per-category", "3",
        "--concurrency", "6",
        "--seed", "42",
        "--policy", "inconclusive",
        "-v",
    ])
    assert args.categories == "ai-ml,cloud-devops"
    assert args.per_category == 3
    assert args.concurrency == 6
    assert args.seed == 42
    assert args.policy == "inconclusive"
    assert args.verbose is True
    assert args.schedule is False


def test_parser_rejects_unknown_policy():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--policy", "retry"])


def _fake_from_settings(store, oracle, persistence):
    captured = {}

    def factory(**overrides):
        captured.update(overrides)
        return DriftAuditPipeline(
            submission_store=store,
            oracle=oracle,
            persistence=persistence,
            notifier=AuditNotifier([]),
            categories=overrides.get("categories") or ["fullstack-dev"],
            per_category=overrides.get("per_category") or 5,
            seed=overrides.get("seed"),
        )

    return factory, captured


@pytest.mark.asyncio
async def test_run_audit_exit_zero_on_completed(fake_store, fake_oracle, audit_store, make_ref, capsys):
    store = fake_store({"ai-ml": [make_ref("m1", category="ai-ml", original_score=70)]})
    factory, captured = _fake_from_settings(store, fake_oracle(default=40), audit_store)
    args = cli.build_parser().parse_args(["--categories", "ai-ml", "--concurrency", "20", "--seed", "3"])

    with patch.object(cli, "create_db_and_tables"), \
         patch.object(cli.DriftAuditPipeline, "from_settings", side_effect=factory):
        code = await cli.run_audit(args)

    assert code == 0
    assert captured["categories"] == ["ai-ml"]
    assert captured["concurrency"] == 8
    out = capsys.readouterr().out
    assert "ARENA AUDIT COMPLETED" in out
    assert "critical deviations detected" in out
    print("  PASS: run_audit_exit_zero_on_completed")


@pytest.mark.asyncio
async def test_run_audit_exit_one_on_failed(fake_store, fake_oracle, audit_store):
    from arena_audit.errors import PersistenceError

    store = fake_store(error=PersistenceError("unreachable"))
    factory, _ = _fake_from_settings(store, fake_oracle(default=40), audit_store)
    args = cli.build_parser().parse_args([])

    with patch.object(cli, "create_db_and_tables"), \
         patch.object(cli.DriftAuditPipeline, "from_settings", side_effect=factory):
        code = await cli.run_audit(args)

    assert code == 1
