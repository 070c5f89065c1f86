"""
Nutrition target aggregate.

A NutritionTarget embeds the calculated figures (each with its rationale)
and an append-only adjustment ledger. Figures are plain dataclasses so the
store can persist them as JSON and rebuild them unchanged.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class BMRResult:
    """Basal metabolic rate and how it was obtained."""

    value: int
    formula: str
    calculation_inputs: Dict[str, Any]
    rationale: str

    @classmethod
    def from_dict(cls, data: dict) -> "BMRResult":
        return cls(
            value=data["value"],
            formula=data["formula"],
            calculation_inputs=dict(data.get("calculation_inputs") or {}),
            rationale=data["rationale"],
        )


@dataclass
class TDEEResult:
    """Total daily energy expenditure."""

    value: int
    activity_level: str
    activity_multiplier: float
    rationale: str

    @classmethod
    def from_dict(cls, data: dict) -> "TDEEResult":
        return cls(**data)


@dataclass
class RateOfChange:
    amount: float
    unit: str = "kg"


@dataclass
class CalorieTarget:
    """Daily calorie target derived from TDEE and the client's goal."""

    value: int
    goal: str
    adjustment: int
    adjustment_percentage: int
    rationale: str
    rate_of_change: Optional[RateOfChange] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CalorieTarget":
        rate = data.get("rate_of_change")
        return cls(
            value=data["value"],
            goal=data["goal"],
            adjustment=data["adjustment"],
            adjustment_percentage=data["adjustment_percentage"],
            rationale=data["rationale"],
            rate_of_change=RateOfChange(**rate) if rate else None,
        )


@dataclass
class MacroTarget:
    grams: int
    percentage: int
    grams_per_kg: float
    rationale: str


@dataclass
class FiberTarget:
    grams: int
    rationale: str


@dataclass
class MacroTargets:
    protein: MacroTarget
    carbs: MacroTarget
    fats: MacroTarget
    fiber: FiberTarget

    @classmethod
    def from_dict(cls, data: dict) -> "MacroTargets":
        return cls(
            protein=MacroTarget(**data["protein"]),
            carbs=MacroTarget(**data["carbs"]),
            fats=MacroTarget(**data["fats"]),
            fiber=FiberTarget(**data["fiber"]),
        )

    def get(self, macro: str) -> MacroTarget:
        if macro not in MACRO_NAMES:
            raise KeyError(macro)
        return getattr(self, macro)


MACRO_NAMES = ("protein", "carbs", "fats")

# kcal per gram
MACRO_CALORIES = {"protein": 4, "carbs": 4, "fats": 9}


@dataclass
class WaterTarget:
    value: float  # liters per day
    rationale: str


@dataclass
class Micronutrient:
    name: str
    value: float
    unit: str
    rationale: str = ""


@dataclass
class AdditionalTargets:
    water: WaterTarget
    micronutrients: List[Micronutrient] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "AdditionalTargets":
        return cls(
            water=WaterTarget(**data["water"]),
            micronutrients=[Micronutrient(**m) for m in data.get("micronutrients", [])],
        )


@dataclass
class WorkoutNutrition:
    enabled: bool
    timing: str
    carbs: Optional[int] = None
    protein: Optional[int] = None


@dataclass
class MealTiming:
    meals_per_day: int
    pre_workout: WorkoutNutrition
    post_workout: WorkoutNutrition
    rationale: str

    @classmethod
    def from_dict(cls, data: dict) -> "MealTiming":
        return cls(
            meals_per_day=data["meals_per_day"],
            pre_workout=WorkoutNutrition(**data["pre_workout"]),
            post_workout=WorkoutNutrition(**data["post_workout"]),
            rationale=data["rationale"],
        )


@dataclass
class RefeedStrategy:
    """Planned temporary increase above the calorie target, mostly carbs."""

    enabled: bool
    rationale: str = ""
    frequency: Optional[str] = None  # weekly, biweekly, monthly
    day_of_week: Optional[str] = None
    calorie_increase: Optional[int] = None
    macro_adjustments: Optional[Dict[str, int]] = None


@dataclass
class DietBreakStrategy:
    """Planned multi-day return to maintenance during an extended deficit."""

    enabled: bool
    rationale: str = ""
    frequency: Optional[str] = None
    duration_days: Optional[int] = None
    target_calories: Optional[int] = None


@dataclass
class TargetFigures:
    """Every derived figure of a nutrition target."""

    bmr: BMRResult
    tdee: TDEEResult
    calorie_target: CalorieTarget
    macro_targets: MacroTargets
    additional_targets: AdditionalTargets
    meal_timing: MealTiming
    refeed_strategy: RefeedStrategy
    diet_break_strategy: DietBreakStrategy

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TargetFigures":
        return cls(
            bmr=BMRResult.from_dict(data["bmr"]),
            tdee=TDEEResult.from_dict(data["tdee"]),
            calorie_target=CalorieTarget.from_dict(data["calorie_target"]),
            macro_targets=MacroTargets.from_dict(data["macro_targets"]),
            additional_targets=AdditionalTargets.from_dict(data["additional_targets"]),
            meal_timing=MealTiming.from_dict(data["meal_timing"]),
            refeed_strategy=RefeedStrategy(**data["refeed_strategy"]),
            diet_break_strategy=DietBreakStrategy(**data["diet_break_strategy"]),
        )

    @property
    def macro_calories(self) -> int:
        """Calories implied by the protein, carb and fat grams."""
        return sum(
            self.macro_targets.get(m).grams * MACRO_CALORIES[m] for m in MACRO_NAMES
        )


@dataclass
class TargetParameters:
    """Caller-supplied options for a target calculation.

    activity_level and climate fall back to the client's profile when unset.
    """

    goal: str
    activity_level: Optional[str] = None
    bmr_formula: str = "mifflin_st_jeor"
    activity_description: Optional[str] = None
    target_rate: Optional[float] = None  # kg/week
    protein_g_per_kg: Optional[float] = None
    carb_preference: str = "moderate"  # low, moderate, high
    custom_calorie_adjustment: Optional[int] = None
    custom_macro_split: Optional[Dict[str, float]] = None
    meals_per_day: int = 4
    pre_workout_nutrition: bool = False
    post_workout_nutrition: bool = True
    diet_duration_weeks: Optional[int] = None
    climate: Optional[str] = None
    notes: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TargetParameters":
        return cls(**data)


@dataclass(frozen=True)
class AdjustmentEntry:
    """One ledger line: a single field changed on a target."""

    timestamp: datetime
    field: str
    old_value: Any
    new_value: Any
    reason: str
    actor: str
    client_feedback: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "reason": self.reason,
            "actor": self.actor,
            "client_feedback": self.client_feedback,
        }


@dataclass
class TargetUpdate:
    """New absolute values for an in-place target revision.

    Unset fields are left untouched.
    """

    calories: Optional[int] = None
    protein_g: Optional[int] = None
    carbs_g: Optional[int] = None
    fats_g: Optional[int] = None
    activity_level: Optional[str] = None
    activity_description: Optional[str] = None
    client_feedback: Optional[str] = None

    def macro_grams(self) -> Dict[str, Optional[int]]:
        return {"protein": self.protein_g, "carbs": self.carbs_g, "fats": self.fats_g}

    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (
                self.calories,
                self.protein_g,
                self.carbs_g,
                self.fats_g,
                self.activity_level,
            )
        )


@dataclass
class NutritionTarget:
    """A computed target for one client, effective from a timestamp."""

    id: int
    client_id: str
    created_by: str
    effective_date: datetime
    next_review_date: datetime
    is_active: bool
    figures: TargetFigures
    parameters: TargetParameters
    version: int = 1
    notes: str = ""
    last_reviewed_date: Optional[datetime] = None
    adjustments: Tuple[AdjustmentEntry, ...] = ()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "created_by": self.created_by,
            "effective_date": self.effective_date.isoformat(),
            "next_review_date": self.next_review_date.isoformat(),
            "last_reviewed_date": (
                self.last_reviewed_date.isoformat() if self.last_reviewed_date else None
            ),
            "is_active": self.is_active,
            "version": self.version,
            "notes": self.notes,
            "parameters": self.parameters.to_dict(),
            **self.figures.to_dict(),
            "adjustments": [a.to_dict() for a in self.adjustments],
        }
