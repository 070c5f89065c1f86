"""
Tests for the Adjustment Applier.

Usage:
    pytest tests/test_applier.py -v
"""
import pytest

from conftest import CLIENT_ID, COACH
from auto_adjust.applier import AdjustmentApplier
from auto_adjust.rules import AdherenceCondition, RuleActions, RuleConditions
from nutrition_targets import TargetParameters
from nutrition_targets.errors import NotFoundError

CONDITIONS = RuleConditions(adherence=AdherenceCondition(min_percentage=80))


@pytest.fixture
def target(service, profile):
    return service.create_target(CLIENT_ID, COACH, TargetParameters(goal="weight_loss", target_rate=0.5))


@pytest.fixture
def applier(target_store):
    return AdjustmentApplier(target_store)


def make_rule(rule_store, actions, name="Adjust"):
    return rule_store.create(CLIENT_ID, COACH.id, name, CONDITIONS, actions)


class TestAdjustmentApplier:
    def test_absolute_deltas(self, applier, rule_store, target_store, target):
        rule = make_rule(
            rule_store,
            RuleActions(calorie_adjustment=150, protein_adjustment=-6, carb_adjustment=40, fat_adjustment=-4),
            name="Refuel",
        )

        result = applier.apply(rule, COACH.id)

        assert result.reason == (
            "Auto-adjustment triggered by rule: Refuel. "
            "Calories +150. Protein -6g. Carbs +40g. Fats -4g."
        )
        assert result.new_values == {"calories": 2359, "protein_g": 170, "carbs_g": 250, "fats_g": 70}
        macros = target_store.get(target.id).figures.macro_targets
        assert (macros.protein.grams, macros.carbs.grams, macros.fats.grams) == (170, 250, 70)

    def test_one_ledger_entry_per_field(self, applier, rule_store, target_store, target):
        rule = make_rule(rule_store, RuleActions(calorie_adjustment=-100, carb_adjustment=-25))

        result = applier.apply(rule, COACH.id)

        assert set(result.changes) == {"calorie_target.value", "macro_targets.carbs.grams"}
        adjustments = target_store.get(target.id).adjustments
        assert len(adjustments) == 2
        assert {a.reason for a in adjustments} == {result.reason}

    def test_percentage_of_current_calories(self, applier, rule_store, target_store, target):
        rule = make_rule(rule_store, RuleActions(percentage_adjustment=-5), name="Trim")

        result = applier.apply(rule, COACH.id)

        # 5% of 2209 is 110.45
        assert result.reason == "Auto-adjustment triggered by rule: Trim. Calories -5% (-110 kcal)."
        assert target_store.get(target.id).figures.calorie_target.value == 2099

    def test_fractional_percentage(self, applier, rule_store, target):
        rule = make_rule(rule_store, RuleActions(percentage_adjustment=2.5), name="Bump")

        result = applier.apply(rule, COACH.id)

        # 2.5% of 2209 is 55.225
        assert result.new_values == {"calories": 2264}
        assert result.reason.endswith("Calories +2.5% (55 kcal).")

    def test_no_deltas_writes_nothing(self, applier, rule_store, target_store, target):
        rule = make_rule(rule_store, RuleActions(), name="Notify only")

        result = applier.apply(rule, COACH.id)

        assert result.changed is False
        assert result.new_values == {}
        assert result.reason == "Auto-adjustment triggered by rule: Notify only."
        stored = target_store.get(target.id)
        assert stored.version == 1
        assert stored.adjustments == ()

    def test_no_active_target(self, applier, rule_store, profile):
        rule = make_rule(rule_store, RuleActions(calorie_adjustment=-100))

        with pytest.raises(NotFoundError) as exc:
            applier.apply(rule, COACH.id)

        assert exc.value.resource == "Active nutrition target"
