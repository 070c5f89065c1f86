"""
Auto-Adjustment Rule Engine.

Per rule, a check pulls the client's logs once for the union of the enabled
conditions' windows, evaluates each enabled condition on its own, and
triggers only when all of them hold. A triggered rule either auto-applies
its adjustment or stays pending until a coach approves it.

Checks are idempotent: every trigger records the date of the newest log it
saw (evidence_through), and a rule whose last trigger already covers the
same evidence is reported as already triggered without writing anything
but the check timestamp.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from nutrition_targets.access import SYSTEM_ACTOR, Actor, ensure_can_read, ensure_elevated
from nutrition_targets.errors import NutritionEngineError, ValidationError
from nutrition_targets.providers import LogStore
from nutrition_targets.store import TargetStore, utcnow

from .applier import AdjustmentApplier, AdjustmentResult
from .conditions import ConditionResult, evaluate_condition
from .notifications import (
    NotificationQueue,
    NotificationType,
    RuleNotification,
    notification_queue,
)
from .rule_store import RuleStore
from .rules import AutoAdjustRule, RuleActions, RuleConditions

logger = logging.getLogger(__name__)


class RuleOutcome(str, Enum):
    """Result of checking one rule."""

    NOT_TRIGGERED = "not_triggered"
    AUTO_APPLIED = "auto_applied"
    PENDING_APPROVAL = "pending_approval"
    ALREADY_TRIGGERED = "already_triggered"
    FAILED = "failed"


@dataclass
class RuleCheckResult:
    rule_id: int
    rule_name: str
    client_id: str
    outcome: RuleOutcome
    conditions: List[ConditionResult] = field(default_factory=list)
    triggered: bool = False  # a new trigger record was written
    adjustment: Optional[AdjustmentResult] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "client_id": self.client_id,
            "outcome": self.outcome.value,
            "triggered": self.triggered,
            "conditions": [c.to_dict() for c in self.conditions],
            "adjustment": self.adjustment.to_dict() if self.adjustment else None,
            "error": self.error,
        }


def _covers(rule: AutoAdjustRule, evidence_through) -> bool:
    last = rule.last_trigger
    return last is not None and last.evidence_through == evidence_through


def _already_triggered(result: RuleCheckResult, evidence_through) -> RuleCheckResult:
    result.outcome = RuleOutcome.ALREADY_TRIGGERED
    logger.info(f"[RULES] Rule {result.rule_id} already triggered on evidence through {evidence_through}")
    return result


class RuleEngine:
    """
    Rule lifecycle and evaluation.

    Rule definitions are managed by coaches and admins; clients may list
    their own rules. Checks run on demand (check_rules) or from the
    scheduler (check_due_rules).
    """

    def __init__(
        self,
        rules: RuleStore,
        targets: TargetStore,
        logs: LogStore,
        applier: Optional[AdjustmentApplier] = None,
        notifications: Optional[NotificationQueue] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.rules = rules
        self.targets = targets
        self.logs = logs
        self.applier = applier or AdjustmentApplier(targets)
        self.notifications = notifications if notifications is not None else notification_queue
        self._clock = clock

    # ------------------------------------------------------------------
    # Rule definitions
    # ------------------------------------------------------------------

    def create_rule(
        self,
        client_id: str,
        actor: Actor,
        name: str,
        conditions: RuleConditions,
        actions: RuleActions,
        description: str = "",
        auto_apply: bool = False,
        check_frequency: str = "weekly",
    ) -> AutoAdjustRule:
        ensure_elevated(actor, "create auto-adjust rules")
        return self.rules.create(
            client_id,
            actor.id,
            name,
            conditions,
            actions,
            description=description,
            auto_apply=auto_apply,
            check_frequency=check_frequency,
        )

    def update_rule(self, rule_id: int, actor: Actor, changes: dict) -> AutoAdjustRule:
        ensure_elevated(actor, "update auto-adjust rules")
        return self.rules.update(rule_id, changes)

    def delete_rule(self, rule_id: int, actor: Actor) -> None:
        ensure_elevated(actor, "delete auto-adjust rules")
        self.rules.delete(rule_id)

    def get_rule(self, rule_id: int, actor: Actor) -> AutoAdjustRule:
        rule = self.rules.get(rule_id)
        ensure_can_read(actor, rule.client_id)
        return rule

    def list_rules(self, client_id: str, actor: Actor, active_only: bool = True) -> List[AutoAdjustRule]:
        ensure_can_read(actor, client_id)
        return self.rules.list_for_client(client_id, active_only=active_only)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def check_rules(self, client_id: str, actor: Actor = SYSTEM_ACTOR) -> List[RuleCheckResult]:
        """
        Check every active rule of a client.

        Each rule is checked in isolation: a failure is reported in that
        rule's result and the remaining rules are still checked.
        """
        ensure_elevated(actor, "check auto-adjust rules")
        rules = self.rules.list_for_client(client_id, active_only=True)
        results = [self._check_isolated(rule) for rule in rules]
        triggered = sum(1 for r in results if r.triggered)
        logger.info(
            f"[RULES] Checked {len(results)} rule(s) for client {client_id}, {triggered} triggered"
        )
        return results

    def check_due_rules(self, now: Optional[datetime] = None) -> List[RuleCheckResult]:
        """Check active rules whose check frequency has elapsed."""
        now = now or self._clock()
        return [self._check_isolated(rule, now) for rule in self.rules.list_due(now)]

    def _check_isolated(self, rule: AutoAdjustRule, now: Optional[datetime] = None) -> RuleCheckResult:
        try:
            return self.check_rule(rule, now)
        except Exception as e:
            logger.exception(f"[RULES] Check of rule {rule.id} failed: {e}")
            return RuleCheckResult(
                rule_id=rule.id,
                rule_name=rule.name,
                client_id=rule.client_id,
                outcome=RuleOutcome.FAILED,
                error=str(e),
            )

    def evaluate(self, rule: AutoAdjustRule, now: Optional[datetime] = None) -> List[ConditionResult]:
        """Evaluate the enabled conditions without writing anything."""
        results, _ = self._evaluate(rule, (now or self._clock()).date())
        return results

    def _evaluate(self, rule: AutoAdjustRule, as_of):
        enabled = rule.conditions.enabled()
        if not enabled:
            return [], None
        start = as_of - timedelta(days=rule.conditions.window_days)
        logs = self.logs.query_logs(rule.client_id, start, as_of)
        results = [evaluate_condition(condition, logs, as_of) for condition in enabled]
        evidence_through = max((log.date for log in logs), default=None)
        return results, evidence_through

    def check_rule(self, rule: AutoAdjustRule, now: Optional[datetime] = None) -> RuleCheckResult:
        """Evaluate one rule and act on the outcome."""
        now = now or self._clock()
        results, evidence_through = self._evaluate(rule, now.date())
        result = RuleCheckResult(
            rule_id=rule.id,
            rule_name=rule.name,
            client_id=rule.client_id,
            outcome=RuleOutcome.NOT_TRIGGERED,
            conditions=results,
        )

        if not results or not all(r.met for r in results):
            self.rules.mark_checked(rule.id, now)
            return result

        if _covers(rule, evidence_through):
            self.rules.mark_checked(rule.id, now)
            return _already_triggered(result, evidence_through)

        snapshot = rule.conditions.to_dict()
        condition_results = [r.to_dict() for r in results]

        # Each write re-reads the rule under the write lock; an overlapping
        # check may have recorded a trigger since the rule was loaded.
        if rule.auto_apply:
            try:
                with self.rules.db.transaction() as tx:
                    if _covers(self.rules.get(rule.id, conn=tx), evidence_through):
                        self.rules.mark_checked(rule.id, now, conn=tx)
                        return _already_triggered(result, evidence_through)
                    adjustment = self.applier.apply(rule, rule.created_by, conn=tx)
                    self.rules.record_trigger(
                        rule.id,
                        now,
                        snapshot,
                        condition_results,
                        adjustments_made=adjustment.to_dict(),
                        approved=True,
                        approved_by=rule.created_by,
                        evidence_through=evidence_through,
                        conn=tx,
                    )
                    self.rules.mark_checked(rule.id, now, conn=tx)
            except NutritionEngineError as e:
                # The adjustment rolled back; keep the trigger so it can be approved later
                with self.rules.db.transaction() as tx:
                    if _covers(self.rules.get(rule.id, conn=tx), evidence_through):
                        self.rules.mark_checked(rule.id, now, conn=tx)
                        return _already_triggered(result, evidence_through)
                    self.rules.record_trigger(
                        rule.id,
                        now,
                        snapshot,
                        condition_results,
                        evidence_through=evidence_through,
                        conn=tx,
                    )
                    self.rules.mark_checked(rule.id, now, conn=tx)
                logger.warning(f"[RULES] Rule {rule.id} triggered but auto-apply failed: {e}")
                result.outcome = RuleOutcome.FAILED
                result.triggered = True
                result.error = e.message
                self._notify(
                    rule,
                    NotificationType.ADJUSTMENT_FAILED,
                    f"Adjustment failed: {rule.name}",
                    f"Rule '{rule.name}' triggered but could not be applied: {e.message}",
                    severity="warning",
                )
                return result

            result.outcome = RuleOutcome.AUTO_APPLIED
            result.triggered = True
            result.adjustment = adjustment
            logger.info(f"[RULES] Rule {rule.id} auto-applied to target {adjustment.target_id}")
            self._notify(
                rule,
                NotificationType.ADJUSTMENT_APPLIED,
                f"Targets adjusted: {rule.name}",
                adjustment.reason,
                adjustment=adjustment,
            )
            return result

        with self.rules.db.transaction() as tx:
            if _covers(self.rules.get(rule.id, conn=tx), evidence_through):
                self.rules.mark_checked(rule.id, now, conn=tx)
                return _already_triggered(result, evidence_through)
            self.rules.record_trigger(
                rule.id,
                now,
                snapshot,
                condition_results,
                evidence_through=evidence_through,
                conn=tx,
            )
            self.rules.mark_checked(rule.id, now, conn=tx)

        result.outcome = RuleOutcome.PENDING_APPROVAL
        result.triggered = True
        logger.info(f"[RULES] Rule {rule.id} triggered but requires approval")
        self._notify(
            rule,
            NotificationType.APPROVAL_REQUIRED,
            f"Approval required: {rule.name}",
            f"Rule '{rule.name}' triggered for client {rule.client_id} and awaits approval",
        )
        return result

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def approve_rule(self, rule_id: int, approver: Actor) -> AdjustmentResult:
        """
        Apply a pending trigger's adjustment and mark it approved.

        The adjustment and the approval commit together or not at all.

        Raises:
            ValidationError: The rule has no trigger awaiting approval
            NotFoundError: The rule or the client's active target is missing
        """
        ensure_elevated(approver, "approve auto-adjustments")
        rule = self.rules.get(rule_id)
        if rule.pending_trigger is None:
            raise ValidationError(
                f"Rule {rule_id} has no trigger awaiting approval",
                field="rule_id",
                expected="a rule with a pending trigger",
            )

        now = self._clock()
        with self.rules.db.transaction() as tx:
            adjustment = self.applier.apply(rule, approver.id, conn=tx)
            self.rules.approve_last_trigger(rule.id, approver.id, adjustment.to_dict(), now, conn=tx)

        logger.info(f"[RULES] Rule {rule_id} approved by {approver.id}, target {adjustment.target_id} adjusted")
        self._notify(
            rule,
            NotificationType.ADJUSTMENT_APPROVED,
            f"Adjustment approved: {rule.name}",
            adjustment.reason,
            adjustment=adjustment,
        )
        return adjustment

    def _notify(
        self,
        rule: AutoAdjustRule,
        notification_type: NotificationType,
        title: str,
        message: str,
        adjustment: Optional[AdjustmentResult] = None,
        severity: str = "info",
    ) -> None:
        recipients = []
        if rule.actions.notify_coach:
            recipients.append("coach")
        if rule.actions.notify_client:
            recipients.append("client")
        if not recipients:
            return
        self.notifications.publish(
            RuleNotification(
                notification_type=notification_type,
                title=title,
                message=message,
                client_id=rule.client_id,
                rule_id=rule.id,
                recipients=recipients,
                severity=severity,
                target_id=adjustment.target_id if adjustment else None,
                changes=adjustment.changes if adjustment else None,
            )
        )
