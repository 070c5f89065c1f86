"""
Nutrition Target Service.

Operations exposed to downstream features (meal-plan generation,
dashboards, reporting). Two revision strategies coexist:

- update_target() revises the existing record in place and ledgers every
  changed field (a manual coaching tweak; same target identity).
- recalculate_target() supersedes the active record with a brand-new one
  computed from refreshed biometrics (new identity; the old record is
  deactivated, never deleted).
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, List, Optional

from .access import Actor, ensure_can_read, ensure_elevated
from .calculator import calculate_targets
from .errors import NotFoundError, ValidationError
from .providers import BiometricProfile, BiometricProvider, DailyLog, LogStore
from .store import TargetStore, utcnow
from .targets import NutritionTarget, TargetFigures, TargetParameters, TargetUpdate

logger = logging.getLogger(__name__)


@dataclass
class TargetHistoryPage:
    targets: List[NutritionTarget]
    total: int
    page: int
    page_size: int

    def to_dict(self) -> dict:
        return {
            "targets": [t.to_dict() for t in self.targets],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
        }


@dataclass
class DailyAdherence:
    date: date
    calorie_deviation: Optional[float]
    protein_deviation: Optional[float]
    within_range: bool

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "calorie_deviation": self.calorie_deviation,
            "protein_deviation": self.protein_deviation,
            "within_range": self.within_range,
        }


@dataclass
class AdherenceStats:
    """Aggregate adherence over a date range."""

    total_days: int
    days_within_range: int
    adherence_rate: float
    avg_calorie_deviation: float
    avg_protein_deviation: Optional[float]
    daily: List[DailyAdherence] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_days": self.total_days,
            "days_within_range": self.days_within_range,
            "adherence_rate": self.adherence_rate,
            "avg_calorie_deviation": self.avg_calorie_deviation,
            "avg_protein_deviation": self.avg_protein_deviation,
            "daily": [d.to_dict() for d in self.daily],
        }


@dataclass
class AdherenceReport:
    target: dict
    adherence: Optional[AdherenceStats]
    recommendations: List[str]

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "adherence": self.adherence.to_dict() if self.adherence else None,
            "recommendations": self.recommendations,
        }


def _deviation(actual: float, target: Optional[float]) -> Optional[float]:
    if not target:
        return None
    return abs(actual - target) / target * 100


def summarize_adherence(logs: List[DailyLog], target: NutritionTarget) -> Optional[AdherenceStats]:
    """
    Compare each logged day with the target in force when it was logged.

    The log's own target snapshot wins; the given target fills the gap for
    days logged without one.
    """
    if not logs:
        return None

    figures = target.figures
    daily = []
    for log in logs:
        calorie_dev = _deviation(log.calories, log.target_calories or figures.calorie_target.value)
        protein_dev = _deviation(
            log.protein, log.target_protein or figures.macro_targets.protein.grams
        )
        if log.within_target is not None:
            within = log.within_target
        else:
            within = calorie_dev is not None and calorie_dev <= 10
        daily.append(
            DailyAdherence(
                date=log.date,
                calorie_deviation=round(calorie_dev, 1) if calorie_dev is not None else None,
                protein_deviation=round(protein_dev, 1) if protein_dev is not None else None,
                within_range=within,
            )
        )

    total = len(daily)
    within_days = sum(1 for d in daily if d.within_range)
    calorie_devs = [d.calorie_deviation for d in daily if d.calorie_deviation is not None]
    protein_devs = [d.protein_deviation for d in daily if d.protein_deviation is not None]

    return AdherenceStats(
        total_days=total,
        days_within_range=within_days,
        adherence_rate=round(within_days / total * 100, 1),
        avg_calorie_deviation=round(sum(calorie_devs) / len(calorie_devs), 1) if calorie_devs else 0.0,
        avg_protein_deviation=round(sum(protein_devs) / len(protein_devs), 1) if protein_devs else None,
        daily=daily,
    )


def adherence_recommendations(adherence: Optional[AdherenceStats]) -> List[str]:
    if adherence is None:
        return ["Not enough data to generate recommendations"]

    recommendations = []
    if adherence.adherence_rate < 60:
        recommendations.append(
            "Adherence is low (<60%). Consider: 1) Simplifying meal plan, "
            "2) Adjusting targets to be more realistic, 3) Addressing barriers to compliance"
        )
    elif adherence.adherence_rate < 80:
        recommendations.append(
            "Adherence is moderate (60-80%). Small adjustments to meal plan or "
            "education may improve consistency"
        )
    else:
        recommendations.append("Adherence is excellent (>80%). Continue current approach")

    if adherence.avg_calorie_deviation > 15:
        recommendations.append(
            "Average calorie deviation is high (>15%). Focus on portion control "
            "and tracking accuracy"
        )
    if adherence.total_days < 7:
        recommendations.append(
            "Limited tracking data. Encourage more consistent logging for better insights"
        )
    return recommendations


def _change(current: float, previous: float, with_percent: bool = True) -> dict:
    result = {"current": current, "previous": previous, "change": current - previous}
    if with_percent:
        result["percent_change"] = round((current - previous) / previous * 100, 1) if previous else None
    return result


class NutritionTargetService:
    """
    Target lifecycle operations.

    Every operation checks the actor's scope before reading the target's
    figures.
    """

    def __init__(
        self,
        store: TargetStore,
        profiles: BiometricProvider,
        logs: LogStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.profiles = profiles
        self.logs = logs
        self._clock = clock

    def preview_calculation(self, profile: BiometricProfile, params: TargetParameters) -> TargetFigures:
        """Calculate figures without persisting anything."""
        return calculate_targets(profile, params)

    def create_target(self, client_id: str, actor: Actor, params: TargetParameters) -> NutritionTarget:
        """Calculate and persist a new active target, superseding any other."""
        ensure_elevated(actor, "create nutrition targets")
        profile = self.profiles.get_profile(client_id)
        figures = calculate_targets(profile, params)
        logger.info(
            f"[TARGETS] Calculated for client {client_id}: BMR {figures.bmr.value}, "
            f"TDEE {figures.tdee.value}, target {figures.calorie_target.value} kcal"
        )
        return self.store.create(client_id, actor.id, figures, params, notes=params.notes)

    def update_target(
        self,
        target_id: int,
        update: TargetUpdate,
        reason: str,
        actor: Actor,
        expected_version: Optional[int] = None,
    ) -> NutritionTarget:
        """Revise a target in place; one ledger entry per changed field."""
        ensure_elevated(actor, "update nutrition targets")
        if update.is_empty():
            raise ValidationError(
                "No target fields supplied",
                field="update",
                expected="calories, protein_g, carbs_g, fats_g or activity_level",
            )
        target, _ = self.store.update(
            target_id, update, reason, actor.id, expected_version=expected_version
        )
        return target

    def recalculate_target(self, client_id: str, actor: Actor, reason: str = "Profile update") -> NutritionTarget:
        """Supersede the active target with one computed from a fresh profile."""
        ensure_elevated(actor, "recalculate nutrition targets")
        current = self.store.get_active(client_id)
        if current is None:
            raise NotFoundError("Active nutrition target", client_id)

        figures = current.figures
        activity_revised = any(a.field == "tdee.activity_level" for a in current.adjustments)
        params = replace(
            current.parameters,
            bmr_formula=figures.bmr.formula,
            goal=figures.calorie_target.goal,
            activity_level=(
                figures.tdee.activity_level
                if current.parameters.activity_level or activity_revised
                else None
            ),
            notes=f"Recalculated from previous target. Reason: {reason}",
        )

        profile = self.profiles.get_profile(client_id)
        new_target = self.store.create(
            client_id, actor.id, calculate_targets(profile, params), params, notes=params.notes
        )
        logger.info(
            f"[TARGETS] Recalculated target for client {client_id}. "
            f"Old: {current.id}, New: {new_target.id}"
        )
        return new_target

    def get_active_target(self, client_id: str, actor: Actor) -> NutritionTarget:
        ensure_can_read(actor, client_id)
        target = self.store.get_active(client_id)
        if target is None:
            raise NotFoundError("Active nutrition target", client_id)
        return target

    def get_target(self, target_id: int, actor: Actor) -> NutritionTarget:
        target = self.store.get(target_id)
        ensure_can_read(actor, target.client_id)
        return target

    def get_target_history(
        self, client_id: str, actor: Actor, page: int = 1, page_size: int = 10
    ) -> TargetHistoryPage:
        ensure_can_read(actor, client_id)
        if page < 1 or page_size < 1:
            raise ValidationError("Page and page size must be positive", field="page", expected=">= 1")
        targets, total = self.store.history(
            client_id, limit=page_size, offset=(page - 1) * page_size
        )
        return TargetHistoryPage(targets=targets, total=total, page=page, page_size=page_size)

    def get_adherence_report(self, target_id: int, start: date, end: date, actor: Actor) -> AdherenceReport:
        if start > end:
            raise ValidationError(
                "Start date must not be after end date", field="start", expected=f"<= {end}"
            )
        target = self.get_target(target_id, actor)
        logs = self.logs.query_logs(target.client_id, start, end)
        adherence = summarize_adherence(logs, target)

        macros = target.figures.macro_targets
        return AdherenceReport(
            target={
                "calories": target.figures.calorie_target.value,
                "protein": macros.protein.grams,
                "carbs": macros.carbs.grams,
                "fats": macros.fats.grams,
            },
            adherence=adherence,
            recommendations=adherence_recommendations(adherence),
        )

    def get_targets_due_for_review(self, actor: Actor, now: Optional[datetime] = None) -> List[NutritionTarget]:
        """Coaches see the targets they created; admins see all."""
        ensure_elevated(actor, "list targets due for review")
        created_by = actor.id if actor.role == "coach" else None
        return self.store.due_for_review(now or self._clock(), created_by=created_by)

    def compare_targets(self, current_id: int, actor: Actor, previous_id: Optional[int] = None) -> dict:
        """Figure-by-figure deltas against a given or the most recent previous target."""
        current = self.get_target(current_id, actor)
        if previous_id is not None:
            previous = self.get_target(previous_id, actor)
            if previous.client_id != current.client_id:
                raise ValidationError(
                    "Targets belong to different clients",
                    field="previous_id",
                    expected=f"a target of client {current.client_id}",
                )
        else:
            previous = self.store.get_previous(current.client_id, current.id)

        if previous is None:
            return {"message": "No previous target to compare", "current": current.to_dict()}

        cur, prev = current.figures, previous.figures
        return {
            "current": current.to_dict(),
            "previous": previous.to_dict(),
            "comparison": {
                "effective_date_diff_days": (current.effective_date - previous.effective_date).days,
                "bmr": _change(cur.bmr.value, prev.bmr.value),
                "tdee": _change(cur.tdee.value, prev.tdee.value),
                "calories": _change(cur.calorie_target.value, prev.calorie_target.value),
                "protein": _change(cur.macro_targets.protein.grams, prev.macro_targets.protein.grams, False),
                "carbs": _change(cur.macro_targets.carbs.grams, prev.macro_targets.carbs.grams, False),
                "fats": _change(cur.macro_targets.fats.grams, prev.macro_targets.fats.grams, False),
            },
        }
