"""
Tests for the Rule Check Scheduler.

Usage:
    pytest tests/test_scheduler.py -v
"""
import time
from datetime import timedelta

import pytest

from conftest import CLIENT_ID, COACH, add_weight_series
from auto_adjust.rules import AdherenceCondition, RuleActions, RuleConditions
from auto_adjust.scheduler import RuleCheckScheduler, RunStatus
from nutrition_targets import TargetParameters


@pytest.fixture
def scheduler(engine):
    scheduler = RuleCheckScheduler(engine, history_size=3)
    yield scheduler
    scheduler.stop_scheduler()


@pytest.fixture
def rule(engine, service, profile, db):
    service.create_target(CLIENT_ID, COACH, TargetParameters(goal="weight_loss", target_rate=0.5))
    add_weight_series(db, [80.0] * 15)
    return engine.create_rule(
        CLIENT_ID,
        COACH,
        "Keep it up",
        RuleConditions(adherence=AdherenceCondition(min_percentage=80)),
        RuleActions(calorie_adjustment=50),
    )


class TestRunOnce:
    def test_run_checks_due_rules(self, scheduler, rule, clock):
        run = scheduler.run_once(clock.now)

        assert run.status == RunStatus.COMPLETED
        assert run.rules_checked == 1
        assert run.triggered == 1
        assert run.failed == 0

    def test_rules_not_due_are_skipped(self, scheduler, rule, clock):
        scheduler.run_once(clock.now)

        run = scheduler.run_once(clock.now + timedelta(days=2))

        assert run.rules_checked == 0

    def test_history_most_recent_first(self, scheduler, clock):
        runs = [scheduler.run_once(clock.now) for _ in range(5)]

        history = scheduler.get_history()

        assert len(history) == 3
        assert history[0]["id"] == runs[-1].id
        assert scheduler.get_status()["runs_recorded"] == 3
        assert scheduler.get_status()["last_run"]["id"] == runs[-1].id

    def test_failed_pass_is_recorded(self, scheduler, monkeypatch):
        def broken(now=None):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(scheduler.engine, "check_due_rules", broken)

        run = scheduler.run_once()

        assert run.status == RunStatus.FAILED
        assert run.error == "database unavailable"


class TestBackgroundScheduler:
    def test_start_and_stop(self, scheduler):
        scheduler.start_scheduler(interval_minutes=60)

        status = scheduler.get_status()
        assert status["scheduler_running"] is True
        assert status["interval_minutes"] == 60
        assert scheduler.is_running is True

        scheduler.stop_scheduler()
        assert scheduler.is_running is False

    def test_timer_runs_passes(self, scheduler):
        scheduler.start_scheduler(interval_minutes=0.001)

        deadline = time.time() + 5
        while not scheduler.get_history() and time.time() < deadline:
            time.sleep(0.05)
        scheduler.stop_scheduler()

        assert scheduler.get_history()
        assert scheduler.get_history()[0]["status"] == "completed"
