"""
Rule Check Scheduler.

Runs due auto-adjust rule checks periodically in the background, and on
demand, and keeps a short in-memory history of runs.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .engine import RuleEngine, RuleOutcome

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Status of a scheduled check run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CheckRun:
    """One pass over the due rules."""

    id: str
    started_at: datetime
    status: RunStatus
    rules_checked: int = 0
    triggered: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "started_at": self.started_at.isoformat(),
            "status": self.status.value,
            "rules_checked": self.rules_checked,
            "triggered": self.triggered,
            "failed": self.failed,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }


class RuleCheckScheduler:
    """
    Periodically checks auto-adjust rules whose check frequency has elapsed.

    Features:
    - Manual trigger for an immediate pass
    - Background timer for periodic passes
    - In-memory history of recent runs
    """

    def __init__(self, engine: RuleEngine, history_size: int = 20):
        """
        Initialize the scheduler.

        Args:
            engine: Rule engine used for each pass
            history_size: Maximum number of runs to remember
        """
        self.engine = engine
        self.history_size = history_size

        # Most recent first
        self._runs: List[CheckRun] = []
        self._lock = threading.Lock()
        self._current_run: Optional[CheckRun] = None

        self._scheduler_timer: Optional[threading.Timer] = None
        self._scheduler_running = False
        self._interval_minutes: Optional[float] = None

        logger.info(f"[SCHEDULER] Initialized with history_size={history_size}")

    def run_once(self, now: Optional[datetime] = None) -> CheckRun:
        """Check every due rule once and record the run."""
        run = CheckRun(
            id=str(uuid.uuid4()),
            started_at=datetime.now(timezone.utc),
            status=RunStatus.RUNNING,
        )
        with self._lock:
            self._current_run = run

        logger.info("[SCHEDULER] Starting rule check pass")
        try:
            results = self.engine.check_due_rules(now)
            run.rules_checked = len(results)
            run.triggered = sum(1 for r in results if r.triggered)
            run.failed = sum(1 for r in results if r.outcome == RuleOutcome.FAILED)
            run.status = RunStatus.COMPLETED
            logger.info(
                f"[SCHEDULER] Checked {run.rules_checked} rule(s): "
                f"{run.triggered} triggered, {run.failed} failed"
            )
        except Exception as e:
            run.status = RunStatus.FAILED
            run.error = str(e)
            logger.error(f"[SCHEDULER] Rule check pass failed: {e}")
        finally:
            run.duration_seconds = (datetime.now(timezone.utc) - run.started_at).total_seconds()
            with self._lock:
                self._runs.insert(0, run)
                while len(self._runs) > self.history_size:
                    self._runs.pop()
                self._current_run = None

        return run

    def get_history(self) -> List[Dict]:
        with self._lock:
            return [r.to_dict() for r in self._runs]

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status."""
        with self._lock:
            return {
                "scheduler_running": self._scheduler_running,
                "interval_minutes": self._interval_minutes,
                "current_run": self._current_run.to_dict() if self._current_run else None,
                "last_run": self._runs[0].to_dict() if self._runs else None,
                "runs_recorded": len(self._runs),
            }

    def start_scheduler(self, interval_minutes: float = 60) -> None:
        """
        Start background rule checks.

        Args:
            interval_minutes: Minutes between passes
        """
        if self._scheduler_running:
            logger.warning("[SCHEDULER] Scheduler already running")
            return

        self._scheduler_running = True
        self._interval_minutes = interval_minutes
        self._schedule_next(interval_minutes)
        logger.info(f"[SCHEDULER] Started with interval={interval_minutes}m")

    def stop_scheduler(self) -> None:
        """Stop the background scheduler."""
        self._scheduler_running = False
        if self._scheduler_timer:
            self._scheduler_timer.cancel()
            self._scheduler_timer = None
        logger.info("[SCHEDULER] Stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler_running

    def _schedule_next(self, interval_minutes: float) -> None:
        if not self._scheduler_running:
            return

        def run_and_reschedule():
            if not self._scheduler_running:
                return
            self.run_once()
            self._schedule_next(interval_minutes)

        self._scheduler_timer = threading.Timer(interval_minutes * 60, run_and_reschedule)
        self._scheduler_timer.daemon = True
        self._scheduler_timer.start()
