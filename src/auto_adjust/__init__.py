"""Auto-adjustment of nutrition targets.

Trainer-defined rules watch a client's daily logs and revise the client's
active nutrition target when all of their conditions hold.
"""

from .applier import AdjustmentApplier, AdjustmentResult
from .conditions import ConditionResult, evaluate_condition
from .engine import RuleCheckResult, RuleEngine, RuleOutcome
from .notifications import NotificationQueue, NotificationType, RuleNotification, notification_queue
from .rule_store import RuleStore
from .rules import (
    AdherenceCondition,
    AutoAdjustRule,
    PerformanceCondition,
    RuleActions,
    RuleConditions,
    TriggerRecord,
    WeightTrendCondition,
)
from .scheduler import CheckRun, RuleCheckScheduler

__all__ = [
    "AdherenceCondition",
    "AdjustmentApplier",
    "AdjustmentResult",
    "AutoAdjustRule",
    "CheckRun",
    "ConditionResult",
    "NotificationQueue",
    "NotificationType",
    "PerformanceCondition",
    "RuleActions",
    "RuleCheckResult",
    "RuleCheckScheduler",
    "RuleConditions",
    "RuleEngine",
    "RuleNotification",
    "RuleOutcome",
    "RuleStore",
    "TriggerRecord",
    "WeightTrendCondition",
    "evaluate_condition",
    "notification_queue",
]
