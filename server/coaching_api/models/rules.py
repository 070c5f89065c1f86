"""Auto-adjust rule request models."""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from auto_adjust import RuleActions, RuleConditions

CheckFrequency = Literal["daily", "weekly", "biweekly"]


class WeightTrendModel(BaseModel):
    threshold_kg_per_week: float = Field(ge=0)
    direction: Literal["increasing", "decreasing", "stable"]
    weeks: int = Field(default=2, ge=1)
    enabled: bool = True


class AdherenceModel(BaseModel):
    min_percentage: float = Field(ge=0, le=100)
    weeks: int = Field(default=2, ge=1)
    enabled: bool = True


class PerformanceModel(BaseModel):
    energy_level: Optional[Literal["very_low", "low", "moderate", "high", "very_high"]] = None
    sleep_quality: Optional[Literal["poor", "fair", "good", "excellent"]] = None
    enabled: bool = True


class ConditionsModel(BaseModel):
    weight_trend: Optional[WeightTrendModel] = None
    adherence: Optional[AdherenceModel] = None
    performance: Optional[PerformanceModel] = None

    def to_conditions(self) -> RuleConditions:
        return RuleConditions.from_dict(self.model_dump())


class ActionsModel(BaseModel):
    calorie_adjustment: int = 0
    percentage_adjustment: float = 0
    protein_adjustment: int = 0
    carb_adjustment: int = 0
    fat_adjustment: int = 0
    notify_coach: bool = True
    notify_client: bool = False
    requires_approval: bool = True

    def to_actions(self) -> RuleActions:
        return RuleActions(**self.model_dump())


class CreateRuleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    client_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    conditions: ConditionsModel
    actions: ActionsModel = Field(default_factory=ActionsModel)
    auto_apply: bool = False
    check_frequency: CheckFrequency = "weekly"


class UpdateRuleRequest(BaseModel):
    """Partial rule update; omitted fields are left untouched."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    conditions: Optional[ConditionsModel] = None
    actions: Optional[ActionsModel] = None
    is_active: Optional[bool] = None
    auto_apply: Optional[bool] = None
    check_frequency: Optional[CheckFrequency] = None

    def to_changes(self) -> dict:
        changes = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None:
                continue
            if name == "conditions":
                value = value.to_conditions()
            elif name == "actions":
                value = value.to_actions()
            changes[name] = value
        return changes
