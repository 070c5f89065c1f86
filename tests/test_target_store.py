"""
Unit tests for the Target Record Store.

These tests verify:
1. At most one active target per client, including under concurrent creates
2. In-place updates ledger exactly one entry per changed field
3. Dependent figures are recomputed after an update
4. Optimistic versioning rejects stale writers
5. History and due-for-review queries

Usage:
    pytest tests/test_target_store.py -v
"""
import dataclasses
import sqlite3
import threading
from datetime import timedelta

import pytest

from conftest import COACH, DEFAULT_PROFILE
from nutrition_targets.calculator import calculate_targets
from nutrition_targets.errors import ConflictError, NotFoundError, ValidationError
from nutrition_targets.providers import BiometricProfile
from nutrition_targets.store import TargetStore
from nutrition_targets.targets import TargetParameters, TargetUpdate

PARAMS = TargetParameters(goal="weight_loss", target_rate=0.5)


def make_figures(**profile_overrides):
    profile = BiometricProfile(**{**DEFAULT_PROFILE, **profile_overrides})
    return calculate_targets(profile, PARAMS)


@pytest.fixture
def created(target_store):
    return target_store.create("client-1", COACH.id, make_figures(), PARAMS, notes="Cut phase")


# ============================================================================
# Create and the single-active invariant
# ============================================================================


class TestCreate:
    def test_first_target_is_active(self, target_store, created, clock):
        assert created.is_active is True
        assert created.version == 1
        assert created.notes == "Cut phase"
        assert created.effective_date == clock.now
        assert created.next_review_date == clock.now + timedelta(days=28)
        assert created.adjustments == ()

    def test_figures_round_trip(self, target_store, created):
        loaded = target_store.get(created.id)

        assert loaded.figures == make_figures()
        assert loaded.parameters == PARAMS

    def test_new_target_supersedes_old(self, target_store, created, clock):
        clock.advance(days=1)
        second = target_store.create("client-1", COACH.id, make_figures(weight_kg=78), PARAMS)

        assert target_store.get(created.id).is_active is False
        assert target_store.get_active("client-1").id == second.id
        assert target_store.count_active("client-1") == 1

    def test_other_clients_untouched(self, target_store, created):
        other = target_store.create("client-2", COACH.id, make_figures(), PARAMS)

        assert target_store.get(created.id).is_active is True
        assert other.is_active is True

    def test_direct_second_active_insert_rejected(self, db, created):
        """The partial unique index backs the invariant for any write path."""
        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO nutrition_targets (
                        client_id, created_by, effective_date, next_review_date,
                        is_active, version, figures, parameters
                    ) VALUES ('client-1', 'rogue', '2025-03-01', '2025-03-29', 1, 1, '{}', '{}')
                    """
                )

    def test_concurrent_creates_leave_one_active(self, db, clock):
        """Writers racing on the same client serialize on the write lock."""
        errors = []

        def create(i):
            store = TargetStore(db, clock=clock)
            try:
                store.create("client-1", f"coach-{i}", make_figures(weight_kg=70 + i), PARAMS)
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=create, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        store = TargetStore(db, clock=clock)
        targets, total = store.history("client-1", limit=20)
        assert errors == []
        assert total == 8
        assert store.count_active("client-1") == 1
        assert sum(1 for t in targets if t.is_active) == 1

    def test_get_missing_raises(self, target_store):
        with pytest.raises(NotFoundError) as exc:
            target_store.get(999)

        assert "999" in exc.value.message

    def test_get_active_none_without_target(self, target_store):
        assert target_store.get_active("nobody") is None


# ============================================================================
# In-place updates and the ledger
# ============================================================================


class TestUpdate:
    def test_calorie_update_ledgers_one_entry(self, target_store, created):
        updated, entries = target_store.update(
            created.id, TargetUpdate(calories=2100), "Plateau for two weeks", COACH.id
        )

        assert [e.field for e in entries] == ["calorie_target.value"]
        assert entries[0].old_value == 2209
        assert entries[0].new_value == 2100
        assert entries[0].actor == COACH.id
        assert updated.version == 2
        assert updated.figures.calorie_target.value == 2100
        assert updated.adjustments == tuple(entries)

    def test_dependent_figures_recomputed(self, target_store, created):
        updated, _ = target_store.update(created.id, TargetUpdate(calories=2100), "Plateau", COACH.id)
        calorie_target = updated.figures.calorie_target
        macros = updated.figures.macro_targets

        assert calorie_target.adjustment == 2100 - 2759
        assert calorie_target.adjustment_percentage == -24
        assert macros.protein.percentage == 34  # 704 / 2100

    def test_macro_update_recomputes_grams_per_kg(self, target_store, created):
        updated, entries = target_store.update(
            created.id, TargetUpdate(protein_g=160, fats_g=70), "Client prefers less protein", COACH.id
        )

        assert [e.field for e in entries] == ["macro_targets.protein.grams", "macro_targets.fats.grams"]
        assert updated.figures.macro_targets.protein.grams_per_kg == 2.0
        assert updated.figures.macro_targets.fats.grams_per_kg == 0.9

    def test_activity_level_update_recalculates_tdee(self, target_store, created):
        updated, entries = target_store.update(
            created.id, TargetUpdate(activity_level="very_active"), "Started two-a-days", COACH.id
        )

        assert [e.field for e in entries] == ["tdee.activity_level", "tdee.value"]
        assert entries[0].old_value == "moderately_active"
        assert updated.figures.tdee.activity_level == "very_active"
        assert updated.figures.calorie_target.value == 2209
        assert updated.figures.calorie_target.adjustment == 2209 - updated.figures.tdee.value

    def test_each_update_appends(self, target_store, created):
        target_store.update(created.id, TargetUpdate(calories=2150), "Week 3", COACH.id)
        updated, _ = target_store.update(created.id, TargetUpdate(calories=2100), "Week 5", COACH.id)

        assert [a.reason for a in updated.adjustments] == ["Week 3", "Week 5"]
        assert updated.version == 3

    def test_client_feedback_recorded(self, target_store, created):
        _, entries = target_store.update(
            created.id,
            TargetUpdate(carbs_g=230, client_feedback="Low energy in training"),
            "More carbs around training",
            COACH.id,
        )

        assert entries[0].client_feedback == "Low energy in training"

    def test_unchanged_values_write_nothing(self, target_store, created):
        updated, entries = target_store.update(created.id, TargetUpdate(calories=2209), "No-op", COACH.id)

        assert entries == []
        assert updated.version == 1

    @pytest.mark.parametrize("reason", ["", "   "])
    def test_reason_required(self, target_store, created, reason):
        with pytest.raises(ValidationError) as exc:
            target_store.update(created.id, TargetUpdate(calories=2100), reason, COACH.id)

        assert exc.value.field == "reason"
        assert target_store.get(created.id).version == 1

    def test_negative_grams_rejected(self, target_store, created):
        with pytest.raises(ValidationError) as exc:
            target_store.update(created.id, TargetUpdate(fats_g=-5), "Typo", COACH.id)

        assert exc.value.field == "fats_g"

    def test_non_positive_calories_rejected(self, target_store, created):
        with pytest.raises(ValidationError):
            target_store.update(created.id, TargetUpdate(calories=0), "Typo", COACH.id)

    def test_stale_version_rejected(self, target_store, created):
        target_store.update(created.id, TargetUpdate(calories=2150), "First writer", COACH.id, expected_version=1)

        with pytest.raises(ConflictError) as exc:
            target_store.update(created.id, TargetUpdate(calories=2100), "Second writer", COACH.id, expected_version=1)

        assert exc.value.expected == 2
        assert target_store.get(created.id).figures.calorie_target.value == 2150

    def test_missing_target(self, target_store):
        with pytest.raises(NotFoundError):
            target_store.update(404, TargetUpdate(calories=2100), "Nothing here", COACH.id)

    def test_ledger_entries_are_immutable(self, target_store, created):
        _, entries = target_store.update(created.id, TargetUpdate(calories=2100), "Plateau", COACH.id)

        with pytest.raises(dataclasses.FrozenInstanceError):
            entries[0].reason = "rewritten"


# ============================================================================
# Queries
# ============================================================================


class TestQueries:
    def test_history_newest_first_with_paging(self, target_store, clock):
        ids = []
        for i in range(3):
            ids.append(target_store.create("client-1", COACH.id, make_figures(weight_kg=80 - i), PARAMS).id)
            clock.advance(days=7)

        page, total = target_store.history("client-1", limit=2, offset=0)
        rest, _ = target_store.history("client-1", limit=2, offset=2)

        assert total == 3
        assert [t.id for t in page] == [ids[2], ids[1]]
        assert [t.id for t in rest] == [ids[0]]

    def test_previous_target(self, target_store, clock):
        first = target_store.create("client-1", COACH.id, make_figures(), PARAMS)
        clock.advance(days=14)
        second = target_store.create("client-1", COACH.id, make_figures(weight_kg=78), PARAMS)

        assert target_store.get_previous("client-1", second.id).id == first.id
        assert target_store.get_previous("client-2", second.id) is None

    def test_due_for_review(self, target_store, clock):
        mine = target_store.create("client-1", COACH.id, make_figures(), PARAMS)
        target_store.create("client-2", "coach-2", make_figures(), PARAMS)

        assert target_store.due_for_review(clock.now) == []

        later = clock.now + timedelta(days=29)
        assert {t.client_id for t in target_store.due_for_review(later)} == {"client-1", "client-2"}
        assert [t.id for t in target_store.due_for_review(later, created_by=COACH.id)] == [mine.id]

    def test_inactive_targets_never_due(self, target_store, clock):
        target_store.create("client-1", COACH.id, make_figures(), PARAMS)
        clock.advance(days=1)
        current = target_store.create("client-1", COACH.id, make_figures(), PARAMS)

        due = target_store.due_for_review(clock.now + timedelta(days=60))
        assert [t.id for t in due] == [current.id]
