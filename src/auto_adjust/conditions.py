"""
Condition evaluators.

One evaluator per condition kind. Each looks only at the logs inside its
own window and returns a ConditionResult; a window without enough data is
a normal unmet result, never an exception.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, List

from nutrition_targets.providers import DailyLog

from .rules import (
    AdherenceCondition,
    Condition,
    ConditionKind,
    PerformanceCondition,
    TrendDirection,
    WeightTrendCondition,
)

INSUFFICIENT_DATA = "Insufficient data"

LOW_ENERGY = ("very_low", "low")
POOR_SLEEP = ("poor", "fair")


@dataclass
class ConditionResult:
    kind: str
    met: bool
    message: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "met": self.met,
            "message": self.message,
            "details": self.details,
        }


def logs_in_window(logs: List[DailyLog], as_of: date, window_days: int) -> List[DailyLog]:
    """Logs dated from window_days before as_of through as_of, oldest first."""
    start = as_of - timedelta(days=window_days)
    return sorted((log for log in logs if start <= log.date <= as_of), key=lambda log: log.date)


def evaluate_weight_trend(
    condition: WeightTrendCondition, logs: List[DailyLog], as_of: date
) -> ConditionResult:
    weighed = [
        log for log in logs_in_window(logs, as_of, condition.window_days) if log.weight is not None
    ]
    kind = condition.kind.value
    if len(weighed) < 2:
        return ConditionResult(kind, False, INSUFFICIENT_DATA, {"data_points": len(weighed)})

    first, last = weighed[0], weighed[-1]
    days = (last.date - first.date).days
    if days <= 0:
        return ConditionResult(kind, False, INSUFFICIENT_DATA, {"data_points": len(weighed)})

    weekly_rate = (last.weight - first.weight) / days * 7
    if weekly_rate > 0:
        actual = TrendDirection.INCREASING.value
    elif weekly_rate < 0:
        actual = TrendDirection.DECREASING.value
    else:
        actual = TrendDirection.STABLE.value

    magnitude = abs(weekly_rate)
    if condition.direction == TrendDirection.STABLE.value:
        met = magnitude < condition.threshold_kg_per_week
    else:
        met = magnitude >= condition.threshold_kg_per_week and actual == condition.direction

    return ConditionResult(
        kind,
        met,
        f"Weight {actual} at {weekly_rate:+.2f} kg/week "
        f"(wanted {condition.direction}, threshold {condition.threshold_kg_per_week} kg/week)",
        {
            "data_points": len(weighed),
            "first_weight": first.weight,
            "last_weight": last.weight,
            "days": days,
            "weekly_rate": round(weekly_rate, 3),
            "direction": actual,
        },
    )


def evaluate_adherence(
    condition: AdherenceCondition, logs: List[DailyLog], as_of: date
) -> ConditionResult:
    flagged = [
        log
        for log in logs_in_window(logs, as_of, condition.window_days)
        if log.within_target is not None
    ]
    kind = condition.kind.value
    if not flagged:
        return ConditionResult(kind, False, INSUFFICIENT_DATA, {"data_points": 0})

    within = sum(1 for log in flagged if log.within_target)
    rate = within / len(flagged) * 100
    return ConditionResult(
        kind,
        rate >= condition.min_percentage,
        f"Adherence {rate:.1f}% over {len(flagged)} days (minimum {condition.min_percentage}%)",
        {"data_points": len(flagged), "days_within_target": within, "adherence_rate": round(rate, 1)},
    )


def _degraded_share(values: List[str], degraded: tuple) -> float:
    return sum(1 for v in values if v in degraded) / len(values)


def evaluate_performance(
    condition: PerformanceCondition, logs: List[DailyLog], as_of: date
) -> ConditionResult:
    """More than half the reporting days show low energy or poor sleep.

    Each configured signal is judged on the days that report it; any one
    degraded signal is enough.
    """
    window = logs_in_window(logs, as_of, condition.window_days)
    kind = condition.kind.value
    if not window:
        return ConditionResult(kind, False, INSUFFICIENT_DATA, {"data_points": 0})

    details = {"data_points": len(window)}
    degraded_signals = []

    if condition.energy_level:
        energy = [log.energy for log in window if log.energy]
        if energy:
            share = _degraded_share(energy, LOW_ENERGY)
            details["low_energy_share"] = round(share, 2)
            if share > 0.5:
                degraded_signals.append("energy")

    if condition.sleep_quality:
        sleep = [log.sleep_quality for log in window if log.sleep_quality]
        if sleep:
            share = _degraded_share(sleep, POOR_SLEEP)
            details["poor_sleep_share"] = round(share, 2)
            if share > 0.5:
                degraded_signals.append("sleep")

    if "low_energy_share" not in details and "poor_sleep_share" not in details:
        return ConditionResult(kind, False, INSUFFICIENT_DATA, details)

    details["degraded"] = degraded_signals
    if degraded_signals:
        message = f"Degraded {' and '.join(degraded_signals)} on most days"
    else:
        message = "Energy and sleep within normal range"
    return ConditionResult(kind, bool(degraded_signals), message, details)


EVALUATORS: Dict[ConditionKind, Callable[[Condition, List[DailyLog], date], ConditionResult]] = {
    ConditionKind.WEIGHT_TREND: evaluate_weight_trend,
    ConditionKind.ADHERENCE: evaluate_adherence,
    ConditionKind.PERFORMANCE: evaluate_performance,
}


def evaluate_condition(condition: Condition, logs: List[DailyLog], as_of: date) -> ConditionResult:
    return EVALUATORS[condition.kind](condition, logs, as_of)
