"""
Target Record Store.

Persists nutrition targets and their adjustment ledgers in SQLite and
enforces "at most one active target per client" as a store operation:
creating a target deactivates the client's other targets inside the same
write transaction, and a partial unique index rejects any write path that
skips that step.
"""

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from .calculator import calculate_tdee, round_half_up
from .database import NutritionDatabase
from .errors import ConflictError, NotFoundError, ValidationError
from .targets import (
    MACRO_CALORIES,
    MACRO_NAMES,
    AdjustmentEntry,
    NutritionTarget,
    TargetFigures,
    TargetParameters,
    TargetUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_REVIEW_INTERVAL_DAYS = 28


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_entry(row) -> AdjustmentEntry:
    """Convert SQLite row to AdjustmentEntry."""
    return AdjustmentEntry(
        timestamp=_parse_dt(row["timestamp"]),
        field=row["field"],
        old_value=json.loads(row["old_value"]) if row["old_value"] is not None else None,
        new_value=json.loads(row["new_value"]) if row["new_value"] is not None else None,
        reason=row["reason"],
        actor=row["actor"],
        client_feedback=row["client_feedback"],
    )


class TargetStore:
    """
    SQLite-backed store for NutritionTarget aggregates.

    Write methods accept an optional connection so callers can fold
    several writes (for example an adjustment and its rule trigger
    record) into one transaction.
    """

    def __init__(
        self,
        db: NutritionDatabase,
        review_interval_days: int = DEFAULT_REVIEW_INTERVAL_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.review_interval = timedelta(days=review_interval_days)
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, conn: sqlite3.Connection, target_id: int) -> Optional[NutritionTarget]:
        row = conn.execute(
            "SELECT * FROM nutrition_targets WHERE id = ?", (target_id,)
        ).fetchone()
        if row is None:
            return None
        ledger = conn.execute(
            "SELECT * FROM target_adjustments WHERE target_id = ? ORDER BY id ASC",
            (target_id,),
        ).fetchall()
        return NutritionTarget(
            id=row["id"],
            client_id=row["client_id"],
            created_by=row["created_by"],
            effective_date=_parse_dt(row["effective_date"]),
            next_review_date=_parse_dt(row["next_review_date"]),
            last_reviewed_date=_parse_dt(row["last_reviewed_date"]),
            is_active=bool(row["is_active"]),
            version=row["version"],
            notes=row["notes"],
            figures=TargetFigures.from_dict(json.loads(row["figures"])),
            parameters=TargetParameters.from_dict(json.loads(row["parameters"])),
            adjustments=tuple(_row_to_entry(r) for r in ledger),
        )

    def _load_many(self, conn: sqlite3.Connection, rows) -> List[NutritionTarget]:
        return [self._load(conn, row["id"]) for row in rows]

    def get(self, target_id: int) -> NutritionTarget:
        with self.db.connect() as conn:
            target = self._load(conn, target_id)
        if target is None:
            raise NotFoundError("Nutrition target", target_id)
        return target

    def get_active(self, client_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[NutritionTarget]:
        """Return the client's active target, or None."""
        if conn is not None:
            return self._get_active(conn, client_id)
        with self.db.connect() as own:
            return self._get_active(own, client_id)

    def _get_active(self, conn: sqlite3.Connection, client_id: str) -> Optional[NutritionTarget]:
        row = conn.execute(
            "SELECT id FROM nutrition_targets WHERE client_id = ? AND is_active = 1",
            (client_id,),
        ).fetchone()
        return self._load(conn, row["id"]) if row else None

    def count_active(self, client_id: str) -> int:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM nutrition_targets WHERE client_id = ? AND is_active = 1",
                (client_id,),
            ).fetchone()
        return row["n"]

    def history(self, client_id: str, limit: int = 10, offset: int = 0) -> Tuple[List[NutritionTarget], int]:
        """Targets for a client, newest effective date first, with the total count."""
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT id FROM nutrition_targets
                WHERE client_id = ?
                ORDER BY effective_date DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (client_id, limit, offset),
            ).fetchall()
            total = conn.execute(
                "SELECT COUNT(*) AS n FROM nutrition_targets WHERE client_id = ?",
                (client_id,),
            ).fetchone()["n"]
            return self._load_many(conn, rows), total

    def get_previous(self, client_id: str, exclude_id: int) -> Optional[NutritionTarget]:
        """Most recent target of the client other than exclude_id."""
        with self.db.connect() as conn:
            row = conn.execute(
                """
                SELECT id FROM nutrition_targets
                WHERE client_id = ? AND id != ?
                ORDER BY effective_date DESC, id DESC
                LIMIT 1
                """,
                (client_id, exclude_id),
            ).fetchone()
            return self._load(conn, row["id"]) if row else None

    def due_for_review(self, now: Optional[datetime] = None, created_by: Optional[str] = None) -> List[NutritionTarget]:
        """Active targets whose next review date has passed, oldest first."""
        now = now or self._clock()
        query = """
            SELECT id FROM nutrition_targets
            WHERE is_active = 1 AND next_review_date <= ?
        """
        args: list = [now.isoformat()]
        if created_by:
            query += " AND created_by = ?"
            args.append(created_by)
        query += " ORDER BY next_review_date ASC"

        with self.db.connect() as conn:
            rows = conn.execute(query, args).fetchall()
            return self._load_many(conn, rows)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        client_id: str,
        created_by: str,
        figures: TargetFigures,
        parameters: TargetParameters,
        notes: str = "",
        conn: Optional[sqlite3.Connection] = None,
    ) -> NutritionTarget:
        """
        Insert a new active target and deactivate every other one for the client.

        Both statements run in one write transaction, so concurrent creates
        for the same client serialize and exactly one target stays active.
        """
        now = self._clock()
        with self.db.transaction(conn) as tx:
            deactivated = tx.execute(
                "UPDATE nutrition_targets SET is_active = 0 WHERE client_id = ? AND is_active = 1",
                (client_id,),
            ).rowcount
            try:
                cursor = tx.execute(
                    """
                    INSERT INTO nutrition_targets (
                        client_id, created_by, effective_date, next_review_date,
                        is_active, version, figures, parameters, notes
                    ) VALUES (?, ?, ?, ?, 1, 1, ?, ?, ?)
                    """,
                    (
                        client_id,
                        created_by,
                        now.isoformat(),
                        (now + self.review_interval).isoformat(),
                        json.dumps(figures.to_dict()),
                        json.dumps(parameters.to_dict()),
                        notes or "",
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise ConflictError(
                    f"Client {client_id} already has an active nutrition target",
                    field="is_active",
                    expected="at most one active target per client",
                ) from e
            target = self._load(tx, cursor.lastrowid)

        logger.info(
            f"[TARGETS] Created target {target.id} for client {client_id} by {created_by} "
            f"({figures.calorie_target.value} kcal, deactivated {deactivated})"
        )
        return target

    def update(
        self,
        target_id: int,
        update: TargetUpdate,
        reason: str,
        actor: str,
        expected_version: Optional[int] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Tuple[NutritionTarget, List[AdjustmentEntry]]:
        """
        Revise a target in place and ledger every changed field.

        Dependent figures (calorie adjustment vs TDEE, macro percentages of
        calories, grams per kg) are recomputed but not ledgered.

        Returns:
            The updated target and the ledger entries appended by this call
        """
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for every adjustment", field="reason")
        self._validate_update(update)

        with self.db.transaction(conn) as tx:
            target = self._load(tx, target_id)
            if target is None:
                raise NotFoundError("Nutrition target", target_id)
            if expected_version is not None and target.version != expected_version:
                raise ConflictError(
                    f"Nutrition target {target_id} was modified concurrently",
                    field="version",
                    expected=target.version,
                )

            figures = TargetFigures.from_dict(target.figures.to_dict())
            changes = self._apply_update(figures, update)
            if not changes:
                return target, []

            now = self._clock()
            updated = tx.execute(
                """
                UPDATE nutrition_targets
                SET figures = ?, version = version + 1, last_reviewed_date = ?
                WHERE id = ? AND version = ?
                """,
                (json.dumps(figures.to_dict()), now.isoformat(), target_id, target.version),
            ).rowcount
            if updated != 1:
                raise ConflictError(
                    f"Nutrition target {target_id} was modified concurrently",
                    field="version",
                    expected=target.version,
                )

            entries = [
                AdjustmentEntry(
                    timestamp=now,
                    field=field,
                    old_value=old,
                    new_value=new,
                    reason=reason.strip(),
                    actor=actor,
                    client_feedback=update.client_feedback,
                )
                for field, old, new in changes
            ]
            tx.executemany(
                """
                INSERT INTO target_adjustments (
                    target_id, timestamp, field, old_value, new_value,
                    reason, actor, client_feedback
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        target_id,
                        e.timestamp.isoformat(),
                        e.field,
                        json.dumps(e.old_value),
                        json.dumps(e.new_value),
                        e.reason,
                        e.actor,
                        e.client_feedback,
                    )
                    for e in entries
                ],
            )
            result = self._load(tx, target_id)

        logger.info(
            f"[TARGETS] Updated target {target_id} by {actor}: "
            f"{', '.join(e.field for e in entries)}"
        )
        return result, entries

    @staticmethod
    def _validate_update(update: TargetUpdate) -> None:
        if update.calories is not None and update.calories <= 0:
            raise ValidationError(
                "Calorie target must be positive", field="calories", expected="> 0"
            )
        for macro, grams in update.macro_grams().items():
            if grams is not None and grams < 0:
                raise ValidationError(
                    f"{macro.title()} grams cannot be negative",
                    field=f"{macro}_g",
                    expected=">= 0",
                )

    @staticmethod
    def _apply_update(figures: TargetFigures, update: TargetUpdate) -> List[tuple]:
        """Mutate figures in place; return (field, old, new) for each changed field."""
        changes = []

        if update.activity_level and update.activity_level != figures.tdee.activity_level:
            tdee = calculate_tdee(
                figures.bmr.value, update.activity_level, update.activity_description
            )
            changes.append(("tdee.activity_level", figures.tdee.activity_level, tdee.activity_level))
            if tdee.value != figures.tdee.value:
                changes.append(("tdee.value", figures.tdee.value, tdee.value))
            figures.tdee = tdee

        calorie_target = figures.calorie_target
        if update.calories is not None and update.calories != calorie_target.value:
            changes.append(("calorie_target.value", calorie_target.value, update.calories))
            calorie_target.value = update.calories

        weight = figures.bmr.calculation_inputs.get("weight_kg")
        for macro, grams in update.macro_grams().items():
            current = figures.macro_targets.get(macro)
            if grams is None or grams == current.grams:
                continue
            changes.append((f"macro_targets.{macro}.grams", current.grams, grams))
            current.grams = grams
            if weight:
                current.grams_per_kg = round_half_up(grams / weight * 10) / 10

        if not changes:
            return changes

        calorie_target.adjustment = calorie_target.value - figures.tdee.value
        calorie_target.adjustment_percentage = round_half_up(
            calorie_target.adjustment / figures.tdee.value * 100
        )
        for macro in MACRO_NAMES:
            m = figures.macro_targets.get(macro)
            m.percentage = round_half_up(m.grams * MACRO_CALORIES[macro] / calorie_target.value * 100)

        return changes
