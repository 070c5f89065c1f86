"""
Metabolic Calculation Library.

Pure, deterministic functions producing BMR, TDEE, calorie target, macro
split, water, fiber, meal timing, refeed and diet-break strategies. Every
figure comes with a natural-language rationale for clinician-facing
audit trails.

calculate_targets() is the single composition used by both the preview
and the create paths, so the two always agree for identical inputs.
"""

import math
from typing import Dict, Optional

from .errors import ValidationError
from .providers import BiometricProfile
from .targets import (
    AdditionalTargets,
    BMRResult,
    CalorieTarget,
    DietBreakStrategy,
    FiberTarget,
    MacroTarget,
    MacroTargets,
    MealTiming,
    RateOfChange,
    RefeedStrategy,
    TargetFigures,
    TargetParameters,
    TDEEResult,
    WaterTarget,
    WorkoutNutrition,
)

KCAL_PER_KG_FAT = 7700

BMR_FORMULAS = ("mifflin_st_jeor", "harris_benedict", "katch_mcardle")

ACTIVITY_LEVELS = {
    "sedentary": (1.2, "Little to no exercise, desk job"),
    "lightly_active": (1.375, "Light exercise 1-3 days/week"),
    "moderately_active": (1.55, "Moderate exercise 3-5 days/week"),
    "very_active": (1.725, "Hard exercise 6-7 days/week"),
    "extremely_active": (1.9, "Very hard exercise, physical job, or training 2x/day"),
}

GOALS = ("weight_loss", "muscle_gain", "maintenance", "performance", "body_recomp", "health")

CARB_PREFERENCES = ("low", "moderate", "high")

# Protein g/kg by goal; anything else gets the general-health default
PROTEIN_G_PER_KG = {
    "weight_loss": (2.2, "2.2g/kg to preserve muscle mass during caloric deficit"),
    "muscle_gain": (2.0, "2.0g/kg to support muscle protein synthesis and recovery"),
    "body_recomp": (2.4, "2.4g/kg (high protein) to support simultaneous fat loss and muscle gain"),
    "performance": (1.8, "1.8g/kg for recovery and adaptation to training stimulus"),
}
DEFAULT_PROTEIN = (1.6, "1.6g/kg for general health and maintenance")

# Extra liters of water per activity level
WATER_ACTIVITY_LITERS = {
    "sedentary": 0.0,
    "lightly_active": 0.5,
    "moderately_active": 1.0,
    "very_active": 1.5,
    "extremely_active": 2.0,
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def _one_decimal(value: float) -> float:
    return round_half_up(value * 10) / 10


def _signed(value: float) -> str:
    return f"+{value:g}" if value > 0 else f"{value:g}"


def calculate_bmr(inputs: Dict, formula: str = "mifflin_st_jeor") -> BMRResult:
    """
    Calculate basal metabolic rate.

    Args:
        inputs: weight_kg, height_cm, age, gender and optional body_fat_pct
        formula: mifflin_st_jeor, harris_benedict or katch_mcardle

    Returns:
        BMRResult rounded to the nearest kcal
    """
    weight = inputs["weight_kg"]
    height = inputs["height_cm"]
    age = inputs["age"]
    male = inputs["gender"] == "male"

    if formula == "mifflin_st_jeor":
        bmr = 10 * weight + 6.25 * height - 5 * age + (5 if male else -161)
        rationale = (
            "Calculated using Mifflin-St Jeor equation "
            "(considered most accurate for general population)"
        )
    elif formula == "harris_benedict":
        if male:
            bmr = 88.362 + 13.397 * weight + 4.799 * height - 5.677 * age
        else:
            bmr = 447.593 + 9.247 * weight + 3.098 * height - 4.330 * age
        rationale = "Calculated using Harris-Benedict equation"
    elif formula == "katch_mcardle":
        body_fat = inputs.get("body_fat_pct")
        if body_fat is None:
            raise ValidationError(
                "Body fat percentage required for Katch-McArdle formula",
                field="body_fat_pct",
                expected="percentage between 0 and 100",
            )
        if not 0 <= body_fat < 100:
            raise ValidationError(
                f"Body fat percentage out of range: {body_fat}",
                field="body_fat_pct",
                expected="percentage between 0 and 100",
            )
        lean_mass = weight * (1 - body_fat / 100)
        bmr = 370 + 21.6 * lean_mass
        rationale = (
            "Calculated using Katch-McArdle equation based on lean body mass "
            f"({lean_mass:.1f}kg). Most accurate when body composition is known."
        )
    else:
        raise ValidationError(
            f"Unknown BMR formula: {formula}",
            field="bmr_formula",
            expected=list(BMR_FORMULAS),
        )

    return BMRResult(
        value=round_half_up(bmr),
        formula=formula,
        calculation_inputs=dict(inputs),
        rationale=rationale,
    )


def calculate_tdee(
    bmr: int, activity_level: str, activity_description: Optional[str] = None
) -> TDEEResult:
    """Scale BMR by the activity multiplier."""
    if activity_level not in ACTIVITY_LEVELS:
        raise ValidationError(
            f"Unknown activity level: {activity_level}",
            field="activity_level",
            expected=list(ACTIVITY_LEVELS),
        )
    multiplier, description = ACTIVITY_LEVELS[activity_level]

    if activity_description:
        rationale = f"TDEE calculated with {multiplier}x multiplier. {activity_description}"
    else:
        rationale = f"TDEE calculated with {multiplier}x multiplier for {description}"

    return TDEEResult(
        value=round_half_up(bmr * multiplier),
        activity_level=activity_level,
        activity_multiplier=multiplier,
        rationale=rationale,
    )


def calculate_calorie_target(
    tdee: int,
    goal: str,
    custom_adjustment: Optional[int] = None,
    target_rate: Optional[float] = None,
) -> CalorieTarget:
    """
    Apply the goal-driven adjustment to TDEE.

    A custom adjustment overrides every goal default. Weekly rates are
    converted with 7700 kcal per kg of fat.
    """
    if goal not in GOALS:
        raise ValidationError(f"Unknown goal: {goal}", field="goal", expected=list(GOALS))

    def percentage(adjustment: int) -> int:
        return round_half_up(adjustment / tdee * 100)

    if custom_adjustment is not None:
        adjustment = int(custom_adjustment)
        pct = percentage(adjustment)
        return CalorieTarget(
            value=tdee + adjustment,
            goal=goal,
            adjustment=adjustment,
            adjustment_percentage=pct,
            rate_of_change=RateOfChange(
                amount=round(abs(adjustment) * 7 / KCAL_PER_KG_FAT, 2)
            ),
            rationale=(
                f"Custom adjustment of {_signed(adjustment)} calories "
                f"({_signed(pct)}%) from TDEE"
            ),
        )

    if goal == "weight_loss":
        rate = target_rate or 0.5
        adjustment = -round_half_up(target_rate * KCAL_PER_KG_FAT / 7) if target_rate else -500
        pct = percentage(adjustment)
        rationale = (
            f"{abs(adjustment)} calorie deficit (≈{abs(pct)}% below TDEE) for "
            f"{rate:g}kg/week fat loss. "
            "Moderate deficit to preserve muscle mass and maintain energy levels."
        )
    elif goal == "muscle_gain":
        rate = target_rate or 0.25
        adjustment = round_half_up(target_rate * KCAL_PER_KG_FAT / 7) if target_rate else 300
        pct = percentage(adjustment)
        rationale = (
            f"{adjustment} calorie surplus (≈{pct}% above TDEE) for "
            f"{rate:g}kg/week muscle gain. "
            "Conservative surplus to maximize muscle gain while minimizing fat accumulation."
        )
    elif goal == "performance":
        rate = 0
        adjustment = 200
        pct = percentage(adjustment)
        rationale = (
            f"Small surplus ({pct}% above TDEE) to support training performance "
            "and recovery without excess fat gain."
        )
    else:
        rate = 0
        adjustment = 0
        pct = 0
        rationale = {
            "body_recomp": (
                "At maintenance calories for body recomposition. Focus on training and "
                "protein intake to build muscle while losing fat simultaneously."
            ),
            "maintenance": (
                "At maintenance calories to maintain current weight and body composition."
            ),
            "health": (
                "At maintenance calories. Focus on nutrient quality and overall health "
                "rather than body composition changes."
            ),
        }[goal]

    return CalorieTarget(
        value=tdee + adjustment,
        goal=goal,
        adjustment=adjustment,
        adjustment_percentage=pct,
        rate_of_change=RateOfChange(amount=rate),
        rationale=rationale,
    )


def _custom_macro(calories: int, pct: float, kcal_per_gram: int, weight: float) -> MacroTarget:
    grams = round_half_up(calories * pct / 100 / kcal_per_gram)
    return MacroTarget(
        grams=grams,
        percentage=round_half_up(pct),
        grams_per_kg=_one_decimal(grams / weight),
        rationale="Custom macro split based on individual preferences and tolerance",
    )


def validate_custom_split(split: Dict[str, float]) -> None:
    missing = [k for k in ("protein", "carbs", "fats") if k not in split]
    if missing:
        raise ValidationError(
            f"Custom macro split missing: {', '.join(missing)}",
            field="custom_macro_split",
            expected="protein, carbs and fats percentages",
        )
    total = sum(float(split[k]) for k in ("protein", "carbs", "fats"))
    if abs(total - 100) > 0.5:
        raise ValidationError(
            f"Custom macro split must total 100%, got {total:g}%",
            field="custom_macro_split",
            expected=100,
        )


def calculate_macros(
    calories: int,
    weight_kg: float,
    goal: str,
    protein_g_per_kg: Optional[float] = None,
    carb_preference: str = "moderate",
    fat_minimum_g_per_kg: float = 0.8,
    custom_split: Optional[Dict[str, float]] = None,
) -> Dict[str, MacroTarget]:
    """
    Split calories into protein, fat and carbohydrate.

    Protein is set first from g/kg, fat second from a share of calories
    (never below the hormonal-health minimum), and carbohydrate takes
    whatever calories remain. A custom percentage split bypasses all of it.
    """
    if custom_split:
        validate_custom_split(custom_split)
        return {
            "protein": _custom_macro(calories, custom_split["protein"], 4, weight_kg),
            "carbs": _custom_macro(calories, custom_split["carbs"], 4, weight_kg),
            "fats": _custom_macro(calories, custom_split["fats"], 9, weight_kg),
        }

    # Protein
    if protein_g_per_kg:
        protein_per_kg = protein_g_per_kg
        protein_rationale = f"{protein_per_kg:g}g/kg as specified for individual needs"
    else:
        protein_per_kg, protein_rationale = PROTEIN_G_PER_KG.get(goal, DEFAULT_PROTEIN)

    protein_grams = round_half_up(protein_per_kg * weight_kg)
    protein_calories = protein_grams * 4
    protein = MacroTarget(
        grams=protein_grams,
        percentage=round_half_up(protein_calories / calories * 100),
        grams_per_kg=protein_per_kg,
        rationale=protein_rationale,
    )

    # Fats
    if carb_preference == "low" or goal == "weight_loss":
        fat_share = 30
        fat_rationale = (
            f"{fat_share}% of calories for satiety, hormone health, "
            "and fat-soluble vitamin absorption"
        )
    elif carb_preference == "high" or goal == "performance":
        fat_share = 20
        fat_rationale = (
            f"{fat_share}% of calories (minimum for hormone health) "
            "to allow higher carbs for performance"
        )
    else:
        fat_share = 25
        fat_rationale = f"{fat_share}% of calories for balanced energy, satiety, and health"

    min_fat_grams = round_half_up(fat_minimum_g_per_kg * weight_kg)
    fat_grams = max(round_half_up(calories * fat_share / 100 / 9), min_fat_grams)
    fat_calories = fat_grams * 9
    fats = MacroTarget(
        grams=fat_grams,
        percentage=round_half_up(fat_calories / calories * 100),
        grams_per_kg=_one_decimal(fat_grams / weight_kg),
        rationale=fat_rationale,
    )

    # Carbs take the remainder
    carb_grams = max(round_half_up((calories - protein_calories - fat_calories) / 4), 0)
    carb_per_kg = _one_decimal(carb_grams / weight_kg)
    if goal in ("performance", "muscle_gain"):
        carb_rationale = (
            f"{carb_per_kg:g}g/kg to fuel training, support recovery, and optimize performance"
        )
    elif goal == "weight_loss":
        carb_rationale = (
            f"{carb_per_kg:g}g/kg remaining after protein/fat targets. "
            "Adjust based on training volume and preference"
        )
    else:
        carb_rationale = f"{carb_per_kg:g}g/kg for energy and to meet calorie target"

    carbs = MacroTarget(
        grams=carb_grams,
        percentage=round_half_up(carb_grams * 4 / calories * 100),
        grams_per_kg=carb_per_kg,
        rationale=carb_rationale,
    )

    return {"protein": protein, "carbs": carbs, "fats": fats}


def calculate_water_intake(
    weight_kg: float, activity_level: str, climate: str = "moderate"
) -> WaterTarget:
    """35 ml/kg base plus activity and climate allowances, in liters."""
    activity_liters = WATER_ACTIVITY_LITERS.get(activity_level, 1.0)
    liters = weight_kg * 35 / 1000 + activity_liters
    if climate == "hot":
        liters += 1.0

    rationale = (
        f"{round_half_up(weight_kg * 35)}ml base (35ml/kg) + "
        f"{activity_liters:g}L for activity level"
    )
    if climate == "hot":
        rationale += " + 1L for hot climate"

    return WaterTarget(value=_one_decimal(liters), rationale=rationale)


def calculate_fiber(calories: int, goal: str) -> FiberTarget:
    """14 g per 1000 kcal, raised 20% during a deficit for satiety."""
    grams = round_half_up(calories / 1000 * 14)
    if goal == "weight_loss":
        grams = round_half_up(grams * 1.2)
        rationale = f"{grams}g (increased for satiety and digestive health during deficit)"
    else:
        rationale = f"{grams}g for digestive health and satiety (14g per 1000 calories)"
    return FiberTarget(grams=grams, rationale=rationale)


def generate_refeed_strategy(
    calories: int,
    tdee: int,
    diet_duration_weeks: int,
    body_fat_pct: Optional[float] = None,
) -> RefeedStrategy:
    """Pick a refeed cadence from deficit size and leanness."""
    if diet_duration_weeks < 4:
        return RefeedStrategy(
            enabled=False,
            rationale="No refeed needed for short-term diets (<4 weeks)",
        )

    deficit = tdee - calories
    deficit_pct = deficit / tdee * 100

    if deficit_pct > 25 or (body_fat_pct is not None and body_fat_pct < 15):
        frequency = "weekly"
        restore = 0.8
        rationale = (
            "Weekly refeed due to aggressive deficit or lower body fat. Helps maintain "
            "metabolic rate, training performance, and adherence."
        )
    elif deficit_pct > 15 or (body_fat_pct is not None and body_fat_pct < 20):
        frequency = "biweekly"
        restore = 0.7
        rationale = (
            "Biweekly refeed to support metabolic adaptation and psychological break "
            "from dieting."
        )
    else:
        frequency = "monthly"
        restore = 0.6
        rationale = "Monthly refeed for diet break and adherence support."

    calorie_increase = round_half_up(deficit * restore)
    return RefeedStrategy(
        enabled=True,
        frequency=frequency,
        day_of_week="saturday",
        calorie_increase=calorie_increase,
        macro_adjustments={
            "carbs": round_half_up(calorie_increase * 0.8 / 4),
            "protein": 0,
            "fats": 0,
        },
        rationale=rationale,
    )


def generate_diet_break_strategy(
    diet_duration_weeks: int,
    deficit_pct: float,
    maintenance_calories: Optional[int] = None,
) -> DietBreakStrategy:
    """Schedule two weeks at maintenance for diets of eight weeks or more."""
    if diet_duration_weeks < 8:
        return DietBreakStrategy(
            enabled=False,
            rationale="No diet break needed for short diets (<8 weeks)",
        )

    frequency = "every 8 weeks" if deficit_pct > 20 else "every 12 weeks"
    return DietBreakStrategy(
        enabled=True,
        frequency=frequency,
        duration_days=14,
        target_calories=maintenance_calories,
        rationale=(
            f"2-week full diet break {frequency} at maintenance calories to restore "
            "metabolic rate, reduce adaptive thermogenesis, and provide psychological "
            "break. Critical for long-term diet success."
        ),
    )


def generate_meal_timing(
    meals_per_day: int,
    pre_workout: bool,
    post_workout: bool,
    goal: str,
    macros: Dict[str, MacroTarget],
) -> MealTiming:
    rationale = f"{meals_per_day} meals per day for "
    if goal == "muscle_gain":
        rationale += "optimal protein distribution and muscle protein synthesis. "
    elif goal == "weight_loss":
        rationale += "satiety and adherence during caloric deficit. "
    else:
        rationale += "convenient and sustainable meal pattern. "
    if pre_workout:
        rationale += "Pre-workout nutrition for energy and performance. "
    if post_workout:
        rationale += "Post-workout nutrition for recovery and adaptation."

    carbs = macros["carbs"].grams
    protein = macros["protein"].grams
    return MealTiming(
        meals_per_day=meals_per_day,
        pre_workout=WorkoutNutrition(
            enabled=pre_workout,
            timing="60-90 minutes before",
            carbs=round_half_up(carbs * 0.2) if pre_workout else None,
            protein=round_half_up(protein * 0.15) if pre_workout else None,
        ),
        post_workout=WorkoutNutrition(
            enabled=post_workout,
            timing="Within 2 hours post-workout",
            carbs=round_half_up(carbs * 0.3) if post_workout else None,
            protein=round_half_up(protein * 0.25) if post_workout else None,
        ),
        rationale=rationale.strip(),
    )


def validate_parameters(params: TargetParameters, activity_level: Optional[str]) -> None:
    """Reject unsupported inputs before any figure is calculated."""
    if not params.goal:
        raise ValidationError("Goal is required", field="goal", expected=list(GOALS))
    if params.goal not in GOALS:
        raise ValidationError(f"Unknown goal: {params.goal}", field="goal", expected=list(GOALS))
    if params.bmr_formula not in BMR_FORMULAS:
        raise ValidationError(
            f"Unknown BMR formula: {params.bmr_formula}",
            field="bmr_formula",
            expected=list(BMR_FORMULAS),
        )
    if not activity_level:
        raise ValidationError(
            "Activity level is required",
            field="activity_level",
            expected=list(ACTIVITY_LEVELS),
        )
    if activity_level not in ACTIVITY_LEVELS:
        raise ValidationError(
            f"Unknown activity level: {activity_level}",
            field="activity_level",
            expected=list(ACTIVITY_LEVELS),
        )
    if params.carb_preference not in CARB_PREFERENCES:
        raise ValidationError(
            f"Unknown carb preference: {params.carb_preference}",
            field="carb_preference",
            expected=list(CARB_PREFERENCES),
        )
    if not 1 <= params.meals_per_day <= 8:
        raise ValidationError(
            "Meals per day must be between 1 and 8",
            field="meals_per_day",
            expected="1-8",
        )
    if params.target_rate is not None and params.target_rate <= 0:
        raise ValidationError(
            "Target rate must be a positive kg/week value",
            field="target_rate",
            expected="> 0",
        )
    if params.custom_macro_split:
        validate_custom_split(params.custom_macro_split)


def calculate_targets(profile: BiometricProfile, params: TargetParameters) -> TargetFigures:
    """
    Run the whole calculation pipeline for one client.

    Args:
        profile: Body metrics of the client
        params: Goal and preference options

    Returns:
        TargetFigures with every derived figure and its rationale
    """
    activity_level = params.activity_level or profile.activity_level
    validate_parameters(params, activity_level)
    climate = params.climate or profile.climate or "moderate"
    weight = profile.weight_kg

    bmr = calculate_bmr(
        {
            "weight_kg": weight,
            "height_cm": profile.height_cm,
            "age": profile.age,
            "gender": profile.gender,
            "body_fat_pct": profile.body_fat_pct,
        },
        params.bmr_formula,
    )
    tdee = calculate_tdee(bmr.value, activity_level, params.activity_description)
    calorie_target = calculate_calorie_target(
        tdee.value,
        params.goal,
        custom_adjustment=params.custom_calorie_adjustment,
        target_rate=params.target_rate,
    )
    macros = calculate_macros(
        calorie_target.value,
        weight,
        params.goal,
        protein_g_per_kg=params.protein_g_per_kg,
        carb_preference=params.carb_preference,
        custom_split=params.custom_macro_split,
    )
    water = calculate_water_intake(weight, activity_level, climate)
    fiber = calculate_fiber(calorie_target.value, params.goal)
    meal_timing = generate_meal_timing(
        params.meals_per_day,
        params.pre_workout_nutrition,
        params.post_workout_nutrition,
        params.goal,
        macros,
    )

    refeed = RefeedStrategy(enabled=False)
    diet_break = DietBreakStrategy(enabled=False)
    if params.goal == "weight_loss" and params.diet_duration_weeks:
        refeed = generate_refeed_strategy(
            calorie_target.value,
            tdee.value,
            params.diet_duration_weeks,
            profile.body_fat_pct,
        )
        diet_break = generate_diet_break_strategy(
            params.diet_duration_weeks,
            abs(calorie_target.adjustment_percentage),
            maintenance_calories=tdee.value,
        )

    return TargetFigures(
        bmr=bmr,
        tdee=tdee,
        calorie_target=calorie_target,
        macro_targets=MacroTargets(
            protein=macros["protein"],
            carbs=macros["carbs"],
            fats=macros["fats"],
            fiber=fiber,
        ),
        additional_targets=AdditionalTargets(water=water),
        meal_timing=meal_timing,
        refeed_strategy=refeed,
        diet_break_strategy=diet_break,
    )
