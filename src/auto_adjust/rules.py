"""
Auto-adjust rule model.

A rule is a trainer-authored policy scoped to one client: a set of
conditions over the client's daily logs and the adjustment to make when
every enabled condition holds. Conditions are a closed set of tagged
variants, one evaluator each (see conditions.py).
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import ClassVar, List, Optional, Tuple, Union

from nutrition_targets.errors import ValidationError


class ConditionKind(str, Enum):
    """Kinds of rule condition."""

    WEIGHT_TREND = "weight_trend"
    ADHERENCE = "adherence"
    PERFORMANCE = "performance"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


ENERGY_LEVELS = ("very_low", "low", "moderate", "high", "very_high")
SLEEP_QUALITIES = ("poor", "fair", "good", "excellent")

# Days between scheduled checks
CHECK_FREQUENCIES = {"daily": 1, "weekly": 7, "biweekly": 14}

PERFORMANCE_WINDOW_DAYS = 7


@dataclass
class WeightTrendCondition:
    """Weekly weight change crosses a threshold in a given direction."""

    kind: ClassVar[ConditionKind] = ConditionKind.WEIGHT_TREND

    threshold_kg_per_week: float
    direction: str
    weeks: int = 2
    enabled: bool = True

    @property
    def window_days(self) -> int:
        return self.weeks * 7

    def validate(self) -> None:
        if self.direction not in {d.value for d in TrendDirection}:
            raise ValidationError(
                f"Unknown weight trend direction: {self.direction}",
                field="conditions.weight_trend.direction",
                expected=[d.value for d in TrendDirection],
            )
        if self.threshold_kg_per_week < 0:
            raise ValidationError(
                "Weight trend threshold cannot be negative",
                field="conditions.weight_trend.threshold_kg_per_week",
                expected=">= 0",
            )
        if self.weeks < 1:
            raise ValidationError(
                "Weight trend window must be at least one week",
                field="conditions.weight_trend.weeks",
                expected=">= 1",
            )


@dataclass
class AdherenceCondition:
    """Share of days within the ±10% calorie band meets a minimum."""

    kind: ClassVar[ConditionKind] = ConditionKind.ADHERENCE

    min_percentage: float
    weeks: int = 2
    enabled: bool = True

    @property
    def window_days(self) -> int:
        return self.weeks * 7

    def validate(self) -> None:
        if not 0 <= self.min_percentage <= 100:
            raise ValidationError(
                "Minimum adherence must be a percentage",
                field="conditions.adherence.min_percentage",
                expected="0-100",
            )
        if self.weeks < 1:
            raise ValidationError(
                "Adherence window must be at least one week",
                field="conditions.adherence.weeks",
                expected=">= 1",
            )


@dataclass
class PerformanceCondition:
    """Energy or sleep degraded on most days of the trailing week.

    Setting energy_level and/or sleep_quality selects the signal(s) to watch.
    """

    kind: ClassVar[ConditionKind] = ConditionKind.PERFORMANCE

    energy_level: Optional[str] = None
    sleep_quality: Optional[str] = None
    enabled: bool = True

    @property
    def window_days(self) -> int:
        return PERFORMANCE_WINDOW_DAYS

    def validate(self) -> None:
        if self.energy_level is None and self.sleep_quality is None:
            raise ValidationError(
                "Performance condition needs an energy or sleep signal",
                field="conditions.performance",
                expected="energy_level or sleep_quality",
            )
        if self.energy_level is not None and self.energy_level not in ENERGY_LEVELS:
            raise ValidationError(
                f"Unknown energy level: {self.energy_level}",
                field="conditions.performance.energy_level",
                expected=list(ENERGY_LEVELS),
            )
        if self.sleep_quality is not None and self.sleep_quality not in SLEEP_QUALITIES:
            raise ValidationError(
                f"Unknown sleep quality: {self.sleep_quality}",
                field="conditions.performance.sleep_quality",
                expected=list(SLEEP_QUALITIES),
            )


Condition = Union[WeightTrendCondition, AdherenceCondition, PerformanceCondition]


@dataclass
class RuleConditions:
    weight_trend: Optional[WeightTrendCondition] = None
    adherence: Optional[AdherenceCondition] = None
    performance: Optional[PerformanceCondition] = None

    def all(self) -> List[Condition]:
        return [c for c in (self.weight_trend, self.adherence, self.performance) if c is not None]

    def enabled(self) -> List[Condition]:
        return [c for c in self.all() if c.enabled]

    @property
    def window_days(self) -> int:
        """Union of the enabled conditions' windows."""
        return max((c.window_days for c in self.enabled()), default=0)

    def validate(self) -> None:
        for condition in self.all():
            condition.validate()

    def to_dict(self) -> dict:
        return {
            "weight_trend": asdict(self.weight_trend) if self.weight_trend else None,
            "adherence": asdict(self.adherence) if self.adherence else None,
            "performance": asdict(self.performance) if self.performance else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "RuleConditions":
        data = data or {}
        weight = data.get("weight_trend")
        adherence = data.get("adherence")
        performance = data.get("performance")
        return cls(
            weight_trend=WeightTrendCondition(**weight) if weight else None,
            adherence=AdherenceCondition(**adherence) if adherence else None,
            performance=PerformanceCondition(**performance) if performance else None,
        )


@dataclass
class RuleActions:
    """Signed deltas applied to the active target when a rule triggers."""

    calorie_adjustment: int = 0
    percentage_adjustment: float = 0
    protein_adjustment: int = 0
    carb_adjustment: int = 0
    fat_adjustment: int = 0
    notify_coach: bool = True
    notify_client: bool = False
    requires_approval: bool = True

    def has_adjustment(self) -> bool:
        return any(
            (
                self.calorie_adjustment,
                self.percentage_adjustment,
                self.protein_adjustment,
                self.carb_adjustment,
                self.fat_adjustment,
            )
        )

    def validate(self) -> None:
        if self.calorie_adjustment and self.percentage_adjustment:
            raise ValidationError(
                "Use either an absolute or a percentage calorie adjustment, not both",
                field="actions.percentage_adjustment",
                expected="0 when calorie_adjustment is set",
            )
        if self.percentage_adjustment <= -100:
            raise ValidationError(
                "Percentage adjustment would remove all calories",
                field="actions.percentage_adjustment",
                expected="> -100",
            )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "RuleActions":
        return cls(**(data or {}))


@dataclass(frozen=True)
class TriggerRecord:
    """One entry of a rule's append-only trigger history."""

    id: int
    triggered_at: datetime
    conditions: dict
    condition_results: list
    adjustments_made: Optional[dict]
    approved: bool
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    evidence_through: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "triggered_at": self.triggered_at.isoformat(),
            "conditions": self.conditions,
            "condition_results": self.condition_results,
            "adjustments_made": self.adjustments_made,
            "approved": self.approved,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "evidence_through": (
                self.evidence_through.isoformat() if self.evidence_through else None
            ),
        }


@dataclass
class AutoAdjustRule:
    """Trainer-defined automation policy for one client."""

    id: int
    client_id: str
    created_by: str
    name: str
    conditions: RuleConditions
    actions: RuleActions
    description: str = ""
    is_active: bool = True
    auto_apply: bool = False
    check_frequency: str = "weekly"
    last_checked: Optional[datetime] = None
    last_triggered: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    triggers: Tuple[TriggerRecord, ...] = field(default_factory=tuple)

    @property
    def last_trigger(self) -> Optional[TriggerRecord]:
        return self.triggers[-1] if self.triggers else None

    @property
    def pending_trigger(self) -> Optional[TriggerRecord]:
        """The most recent trigger if it still awaits approval."""
        last = self.last_trigger
        return last if last is not None and not last.approved else None

    def is_due(self, now: datetime) -> bool:
        """Whether the check frequency has elapsed since the last check."""
        if self.last_checked is None:
            return True
        interval = timedelta(days=CHECK_FREQUENCIES[self.check_frequency])
        return now - self.last_checked >= interval

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "created_by": self.created_by,
            "name": self.name,
            "description": self.description,
            "conditions": self.conditions.to_dict(),
            "actions": self.actions.to_dict(),
            "is_active": self.is_active,
            "auto_apply": self.auto_apply,
            "check_frequency": self.check_frequency,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
            "last_triggered": self.last_triggered.isoformat() if self.last_triggered else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "triggers": [t.to_dict() for t in self.triggers],
        }


def validate_check_frequency(value: str) -> None:
    if value not in CHECK_FREQUENCIES:
        raise ValidationError(
            f"Unknown check frequency: {value}",
            field="check_frequency",
            expected=list(CHECK_FREQUENCIES),
        )
