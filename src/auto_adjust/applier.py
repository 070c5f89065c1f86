"""Adjustment Applier: turns a rule's deltas into a ledgered target update."""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from nutrition_targets.calculator import round_half_up
from nutrition_targets.errors import NotFoundError
from nutrition_targets.store import TargetStore
from nutrition_targets.targets import TargetUpdate

from .rules import AutoAdjustRule

logger = logging.getLogger(__name__)


@dataclass
class AdjustmentResult:
    target_id: int
    reason: str
    changes: Dict[str, dict] = field(default_factory=dict)
    new_values: Dict[str, float] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.changes)

    def to_dict(self) -> dict:
        return {
            "target_id": self.target_id,
            "reason": self.reason,
            "changes": self.changes,
            "new_values": self.new_values,
        }


def _signed(value) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"+{value}" if value > 0 else str(value)


class AdjustmentApplier:
    def __init__(self, targets: TargetStore):
        self.targets = targets

    def apply(
        self,
        rule: AutoAdjustRule,
        actor: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> AdjustmentResult:
        """
        Apply a rule's deltas to the client's active target.

        Deltas are added to the current values; a percentage delta is taken
        of the current calorie target. The write goes through the target
        store's update path, so it ledgers one entry per changed field and
        joins the caller's transaction when conn is given.

        Raises:
            NotFoundError: The client has no active target
        """
        target = self.targets.get_active(rule.client_id, conn=conn)
        if target is None:
            logger.warning(
                f"[RULES] No active nutrition target for client {rule.client_id}, "
                f"cannot apply rule {rule.id}"
            )
            raise NotFoundError("Active nutrition target", rule.client_id)

        actions = rule.actions
        reason: List[str] = [f"Auto-adjustment triggered by rule: {rule.name}."]
        if not actions.has_adjustment():
            logger.info(f"[RULES] Rule {rule.id} carries no deltas, target {target.id} left unchanged")
            return AdjustmentResult(target_id=target.id, reason=reason[0])

        figures = target.figures
        macros = figures.macro_targets
        current_calories = figures.calorie_target.value
        values: Dict[str, float] = {}

        if actions.calorie_adjustment:
            values["calories"] = current_calories + actions.calorie_adjustment
            reason.append(f"Calories {_signed(actions.calorie_adjustment)}.")

        if actions.percentage_adjustment:
            delta = round_half_up(current_calories * actions.percentage_adjustment / 100)
            values["calories"] = current_calories + delta
            reason.append(
                f"Calories {_signed(actions.percentage_adjustment)}% ({delta} kcal)."
            )

        if actions.protein_adjustment:
            values["protein_g"] = macros.protein.grams + actions.protein_adjustment
            reason.append(f"Protein {_signed(actions.protein_adjustment)}g.")

        if actions.carb_adjustment:
            values["carbs_g"] = macros.carbs.grams + actions.carb_adjustment
            reason.append(f"Carbs {_signed(actions.carb_adjustment)}g.")

        if actions.fat_adjustment:
            values["fats_g"] = macros.fats.grams + actions.fat_adjustment
            reason.append(f"Fats {_signed(actions.fat_adjustment)}g.")

        reason_text = " ".join(reason)
        _, entries = self.targets.update(target.id, TargetUpdate(**values), reason_text, actor, conn=conn)

        logger.info(
            f"[RULES] Rule {rule.id} adjusted target {target.id} for client {rule.client_id}: "
            f"{len(entries)} field(s) changed"
        )
        return AdjustmentResult(
            target_id=target.id,
            reason=reason_text,
            changes={e.field: {"old": e.old_value, "new": e.new_value} for e in entries},
            new_values=values,
        )
