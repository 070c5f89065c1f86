"""Nutrition target request models."""
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from nutrition_targets import BiometricProfile, TargetParameters, TargetUpdate

Gender = Literal["male", "female", "other"]


class ProfileModel(BaseModel):
    """Body metrics for a calculation preview."""

    weight_kg: float = Field(gt=0)
    height_cm: float = Field(gt=0)
    age: int = Field(gt=0)
    gender: Gender
    activity_level: str
    body_fat_pct: Optional[float] = Field(default=None, ge=0, lt=100)
    climate: str = "moderate"

    def to_profile(self) -> BiometricProfile:
        return BiometricProfile(**self.model_dump())


class TargetParametersModel(BaseModel):
    """Goal and calculation options."""

    model_config = ConfigDict(extra="forbid")

    goal: str
    activity_level: Optional[str] = None
    bmr_formula: str = "mifflin_st_jeor"
    activity_description: Optional[str] = None
    target_rate: Optional[float] = Field(default=None, ge=0, description="kg per week")
    protein_g_per_kg: Optional[float] = Field(default=None, gt=0)
    carb_preference: Literal["low", "moderate", "high"] = "moderate"
    custom_calorie_adjustment: Optional[int] = None
    custom_macro_split: Optional[Dict[str, float]] = None
    meals_per_day: int = Field(default=4, ge=1, le=8)
    pre_workout_nutrition: bool = False
    post_workout_nutrition: bool = True
    diet_duration_weeks: Optional[int] = Field(default=None, ge=1)
    climate: Optional[str] = None
    notes: str = ""

    def to_parameters(self) -> TargetParameters:
        return TargetParameters(**self.model_dump())


class PreviewRequest(BaseModel):
    profile: ProfileModel
    parameters: TargetParametersModel


class CreateTargetRequest(BaseModel):
    client_id: str = Field(min_length=1)
    parameters: TargetParametersModel


class UpdateTargetRequest(BaseModel):
    """New absolute values; omitted fields are left untouched."""

    calories: Optional[int] = None
    protein_g: Optional[int] = None
    carbs_g: Optional[int] = None
    fats_g: Optional[int] = None
    activity_level: Optional[str] = None
    activity_description: Optional[str] = None
    client_feedback: Optional[str] = None
    reason: str
    expected_version: Optional[int] = None

    def to_update(self) -> TargetUpdate:
        return TargetUpdate(
            **self.model_dump(exclude={"reason", "expected_version"})
        )


class RecalculateRequest(BaseModel):
    reason: str = "Profile update"
