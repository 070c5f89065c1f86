"""
Rule Definition Store.

SQLite persistence for auto-adjust rules and their append-only trigger
history. Write methods take an optional connection so the engine can fold
bookkeeping, trigger records and target adjustments into one transaction.
"""

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import Callable, List, Optional

from nutrition_targets.database import NutritionDatabase
from nutrition_targets.errors import NotFoundError, ValidationError
from nutrition_targets.store import utcnow

from .rules import (
    AutoAdjustRule,
    RuleActions,
    RuleConditions,
    TriggerRecord,
    validate_check_frequency,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name",
    "description",
    "conditions",
    "actions",
    "is_active",
    "auto_apply",
    "check_frequency",
)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_trigger(row) -> TriggerRecord:
    """Convert SQLite row to TriggerRecord."""
    return TriggerRecord(
        id=row["id"],
        triggered_at=_parse_dt(row["triggered_at"]),
        conditions=json.loads(row["conditions"]),
        condition_results=json.loads(row["condition_results"]),
        adjustments_made=json.loads(row["adjustments_made"]) if row["adjustments_made"] else None,
        approved=bool(row["approved"]),
        approved_by=row["approved_by"],
        approved_at=_parse_dt(row["approved_at"]),
        evidence_through=(
            date.fromisoformat(row["evidence_through"]) if row["evidence_through"] else None
        ),
    )


def _validate_name(name: str) -> str:
    if not name or not name.strip():
        raise ValidationError("Rule name is required", field="name")
    return name.strip()


class RuleStore:
    """SQLite-backed store for AutoAdjustRule aggregates."""

    def __init__(self, db: NutritionDatabase, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self._clock = clock

    def _load(self, conn: sqlite3.Connection, rule_id: int) -> Optional[AutoAdjustRule]:
        row = conn.execute("SELECT * FROM adjust_rules WHERE id = ?", (rule_id,)).fetchone()
        if row is None:
            return None
        triggers = conn.execute(
            "SELECT * FROM rule_triggers WHERE rule_id = ? ORDER BY id ASC", (rule_id,)
        ).fetchall()
        return AutoAdjustRule(
            id=row["id"],
            client_id=row["client_id"],
            created_by=row["created_by"],
            name=row["name"],
            description=row["description"],
            conditions=RuleConditions.from_dict(json.loads(row["conditions"])),
            actions=RuleActions.from_dict(json.loads(row["actions"])),
            is_active=bool(row["is_active"]),
            auto_apply=bool(row["auto_apply"]),
            check_frequency=row["check_frequency"],
            last_checked=_parse_dt(row["last_checked"]),
            last_triggered=_parse_dt(row["last_triggered"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
            triggers=tuple(_row_to_trigger(t) for t in triggers),
        )

    def _require(self, conn: sqlite3.Connection, rule_id: int) -> AutoAdjustRule:
        rule = self._load(conn, rule_id)
        if rule is None:
            raise NotFoundError("Auto-adjust rule", rule_id)
        return rule

    def get(self, rule_id: int, conn: Optional[sqlite3.Connection] = None) -> AutoAdjustRule:
        if conn is not None:
            return self._require(conn, rule_id)
        with self.db.connect() as own:
            return self._require(own, rule_id)

    def list_for_client(self, client_id: str, active_only: bool = True) -> List[AutoAdjustRule]:
        """Rules of a client, newest first."""
        query = "SELECT id FROM adjust_rules WHERE client_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created_at DESC, id DESC"
        with self.db.connect() as conn:
            rows = conn.execute(query, (client_id,)).fetchall()
            return [self._load(conn, row["id"]) for row in rows]

    def list_due(self, now: Optional[datetime] = None) -> List[AutoAdjustRule]:
        """Active rules whose check frequency has elapsed since their last check."""
        now = now or self._clock()
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT id FROM adjust_rules WHERE is_active = 1 ORDER BY id ASC"
            ).fetchall()
            rules = [self._load(conn, row["id"]) for row in rows]
        return [rule for rule in rules if rule.is_due(now)]

    def create(
        self,
        client_id: str,
        created_by: str,
        name: str,
        conditions: RuleConditions,
        actions: RuleActions,
        description: str = "",
        auto_apply: bool = False,
        check_frequency: str = "weekly",
        is_active: bool = True,
    ) -> AutoAdjustRule:
        name = _validate_name(name)
        conditions.validate()
        actions.validate()
        validate_check_frequency(check_frequency)

        now = self._clock().isoformat()
        with self.db.transaction() as tx:
            cursor = tx.execute(
                """
                INSERT INTO adjust_rules (
                    client_id, created_by, name, description, conditions, actions,
                    is_active, auto_apply, check_frequency, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    client_id,
                    created_by,
                    name,
                    description or "",
                    json.dumps(conditions.to_dict()),
                    json.dumps(actions.to_dict()),
                    int(is_active),
                    int(auto_apply),
                    check_frequency,
                    now,
                    now,
                ),
            )
            rule = self._load(tx, cursor.lastrowid)

        logger.info(f"[RULES] Rule {rule.id} '{rule.name}' created for client {client_id} by {created_by}")
        return rule

    def update(self, rule_id: int, changes: dict) -> AutoAdjustRule:
        """Apply a partial update; unknown fields are rejected."""
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Cannot update rule fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
                expected=list(UPDATABLE_FIELDS),
            )

        columns = {}
        for name, value in changes.items():
            if name == "name":
                columns["name"] = _validate_name(value)
            elif name == "conditions":
                value.validate()
                columns["conditions"] = json.dumps(value.to_dict())
            elif name == "actions":
                value.validate()
                columns["actions"] = json.dumps(value.to_dict())
            elif name == "check_frequency":
                validate_check_frequency(value)
                columns["check_frequency"] = value
            elif name in ("is_active", "auto_apply"):
                columns[name] = int(bool(value))
            else:
                columns[name] = value or ""

        with self.db.transaction() as tx:
            self._require(tx, rule_id)
            if columns:
                columns["updated_at"] = self._clock().isoformat()
                assignments = ", ".join(f"{column} = ?" for column in columns)
                tx.execute(
                    f"UPDATE adjust_rules SET {assignments} WHERE id = ?",
                    (*columns.values(), rule_id),
                )
            rule = self._load(tx, rule_id)

        logger.info(f"[RULES] Rule {rule_id} updated: {', '.join(changes) or 'no changes'}")
        return rule

    def delete(self, rule_id: int) -> None:
        """Remove a rule together with its trigger history."""
        with self.db.transaction() as tx:
            deleted = tx.execute("DELETE FROM adjust_rules WHERE id = ?", (rule_id,)).rowcount
        if not deleted:
            raise NotFoundError("Auto-adjust rule", rule_id)
        logger.info(f"[RULES] Rule {rule_id} deleted")

    def mark_checked(self, rule_id: int, checked_at: datetime, conn: Optional[sqlite3.Connection] = None) -> None:
        with self.db.transaction(conn) as tx:
            tx.execute(
                "UPDATE adjust_rules SET last_checked = ? WHERE id = ?",
                (checked_at.isoformat(), rule_id),
            )

    def record_trigger(
        self,
        rule_id: int,
        triggered_at: datetime,
        conditions: dict,
        condition_results: list,
        adjustments_made: Optional[dict] = None,
        approved: bool = False,
        approved_by: Optional[str] = None,
        evidence_through: Optional[date] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> TriggerRecord:
        """Append a trigger entry and stamp the rule's last_triggered."""
        with self.db.transaction(conn) as tx:
            cursor = tx.execute(
                """
                INSERT INTO rule_triggers (
                    rule_id, triggered_at, conditions, condition_results,
                    adjustments_made, approved, approved_by, approved_at, evidence_through
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule_id,
                    triggered_at.isoformat(),
                    json.dumps(conditions),
                    json.dumps(condition_results),
                    json.dumps(adjustments_made) if adjustments_made is not None else None,
                    int(approved),
                    approved_by,
                    triggered_at.isoformat() if approved else None,
                    evidence_through.isoformat() if evidence_through else None,
                ),
            )
            tx.execute(
                "UPDATE adjust_rules SET last_triggered = ? WHERE id = ?",
                (triggered_at.isoformat(), rule_id),
            )
            row = tx.execute(
                "SELECT * FROM rule_triggers WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return _row_to_trigger(row)

    def approve_last_trigger(
        self,
        rule_id: int,
        approver: str,
        adjustments_made: Optional[dict],
        approved_at: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> TriggerRecord:
        """Mark the most recent trigger approved by approver."""
        with self.db.transaction(conn) as tx:
            row = tx.execute(
                "SELECT id, approved FROM rule_triggers WHERE rule_id = ? ORDER BY id DESC LIMIT 1",
                (rule_id,),
            ).fetchone()
            if row is None or row["approved"]:
                raise ValidationError(
                    f"Rule {rule_id} has no trigger awaiting approval",
                    field="rule_id",
                    expected="a rule with a pending trigger",
                )
            tx.execute(
                """
                UPDATE rule_triggers
                SET approved = 1, approved_by = ?, approved_at = ?, adjustments_made = ?
                WHERE id = ?
                """,
                (
                    approver,
                    approved_at.isoformat(),
                    json.dumps(adjustments_made) if adjustments_made is not None else None,
                    row["id"],
                ),
            )
            updated = tx.execute("SELECT * FROM rule_triggers WHERE id = ?", (row["id"],)).fetchone()
        return _row_to_trigger(updated)
