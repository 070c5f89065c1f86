"""
Tests for the Nutrition Target Service.

Covers preview vs create, client-scope checks, recalculation from a
refreshed profile, adherence reporting and target comparison.

Usage:
    pytest tests/test_target_service.py -v
"""
from datetime import timedelta

import pytest

from conftest import ADMIN, CLIENT, CLIENT_ID, COACH, DEFAULT_PROFILE, TODAY, add_log, add_profile
from nutrition_targets import Actor, BiometricProfile, TargetParameters, TargetUpdate
from nutrition_targets.errors import AuthorizationError, NotFoundError, ValidationError

PARAMS = TargetParameters(goal="weight_loss", target_rate=0.5)


@pytest.fixture
def target(service, profile):
    return service.create_target(CLIENT_ID, COACH, PARAMS)


# ============================================================================
# Create and preview
# ============================================================================


class TestCreateAndPreview:
    def test_preview_matches_created_figures(self, service, target):
        preview = service.preview_calculation(BiometricProfile(**DEFAULT_PROFILE), PARAMS)

        assert preview == target.figures
        assert target.figures.calorie_target.value == 2209

    def test_preview_persists_nothing(self, service, target_store, profile):
        service.preview_calculation(BiometricProfile(**DEFAULT_PROFILE), PARAMS)

        assert target_store.get_active(CLIENT_ID) is None

    def test_create_records_creator_and_notes(self, service, profile):
        params = TargetParameters(goal="maintenance", notes="Off-season")
        target = service.create_target(CLIENT_ID, COACH, params)

        assert target.created_by == COACH.id
        assert target.notes == "Off-season"
        assert target.figures.calorie_target.value == 2759

    def test_client_cannot_create(self, service, profile):
        with pytest.raises(AuthorizationError):
            service.create_target(CLIENT_ID, CLIENT, PARAMS)

    def test_unknown_client_profile(self, service):
        with pytest.raises(NotFoundError) as exc:
            service.create_target("ghost", COACH, PARAMS)

        assert exc.value.resource == "Client profile"

    def test_invalid_parameters_persist_nothing(self, service, target_store, profile):
        with pytest.raises(ValidationError):
            service.create_target(CLIENT_ID, COACH, TargetParameters(goal="bulk_forever"))

        assert target_store.count_active(CLIENT_ID) == 0


# ============================================================================
# Reads and client scope
# ============================================================================


class TestClientScope:
    def test_client_reads_own_target(self, service, target):
        assert service.get_active_target(CLIENT_ID, CLIENT).id == target.id
        assert service.get_target(target.id, CLIENT).id == target.id

    def test_other_client_rejected(self, service, target):
        stranger = Actor(id="client-2", role="client")

        with pytest.raises(AuthorizationError):
            service.get_active_target(CLIENT_ID, stranger)
        with pytest.raises(AuthorizationError):
            service.get_target(target.id, stranger)
        with pytest.raises(AuthorizationError):
            service.get_target_history(CLIENT_ID, stranger)

    def test_client_cannot_update(self, service, target):
        with pytest.raises(AuthorizationError):
            service.update_target(target.id, TargetUpdate(calories=2500), "I want more", CLIENT)

    def test_no_active_target(self, service, profile):
        with pytest.raises(NotFoundError):
            service.get_active_target(CLIENT_ID, COACH)

    def test_history_paging_validated(self, service, target):
        with pytest.raises(ValidationError):
            service.get_target_history(CLIENT_ID, COACH, page=0)

        page = service.get_target_history(CLIENT_ID, COACH, page=1, page_size=5)
        assert page.total == 1
        assert page.to_dict()["targets"][0]["id"] == target.id


# ============================================================================
# Update and recalculate
# ============================================================================


class TestRevisions:
    def test_empty_update_rejected(self, service, target):
        with pytest.raises(ValidationError) as exc:
            service.update_target(target.id, TargetUpdate(client_feedback="Feeling fine"), "Check-in", COACH)

        assert exc.value.field == "update"

    def test_update_keeps_identity(self, service, target):
        updated = service.update_target(target.id, TargetUpdate(calories=2100), "Plateau", COACH)

        assert updated.id == target.id
        assert updated.is_active is True
        assert len(updated.adjustments) == 1

    def test_recalculate_supersedes(self, service, target, db, clock):
        add_profile(db, weight_kg=78.0)
        clock.advance(days=28)

        new_target = service.recalculate_target(CLIENT_ID, COACH, reason="Monthly weigh-in")

        assert new_target.id != target.id
        assert new_target.figures.bmr.value == 1760
        assert new_target.notes == "Recalculated from previous target. Reason: Monthly weigh-in"
        assert service.get_target(target.id, COACH).is_active is False
        assert new_target.parameters.target_rate == 0.5

    def test_recalculate_keeps_revised_activity_level(self, service, target):
        service.update_target(target.id, TargetUpdate(activity_level="very_active"), "New training block", COACH)

        new_target = service.recalculate_target(CLIENT_ID, COACH)

        assert new_target.figures.tdee.activity_level == "very_active"

    def test_recalculate_without_active_target(self, service, profile):
        with pytest.raises(NotFoundError):
            service.recalculate_target(CLIENT_ID, COACH)


# ============================================================================
# Adherence, review and comparison
# ============================================================================


class TestReports:
    def test_adherence_report(self, service, target, db):
        for offset in range(1, 4):
            add_log(db, TODAY - timedelta(days=offset), calories=2200)
        add_log(db, TODAY, calories=2600)

        report = service.get_adherence_report(target.id, TODAY - timedelta(days=7), TODAY, COACH)
        stats = report.adherence

        assert report.target["calories"] == 2209
        assert stats.total_days == 4
        assert stats.days_within_range == 3
        assert stats.adherence_rate == 75.0
        assert stats.daily[-1].within_range is False
        assert stats.daily[-1].calorie_deviation == 18.2
        assert any("moderate" in r for r in report.recommendations)
        assert any("Limited tracking data" in r for r in report.recommendations)

    def test_adherence_falls_back_to_target_figures(self, service, target, db):
        add_log(db, TODAY, calories=2209, target_calories=None, target_protein=None)

        stats = service.get_adherence_report(target.id, TODAY, TODAY, COACH).adherence

        assert stats.daily[0].calorie_deviation == 0.0
        assert stats.daily[0].within_range is True

    def test_adherence_without_logs(self, service, target):
        report = service.get_adherence_report(target.id, TODAY - timedelta(days=7), TODAY, COACH)

        assert report.adherence is None
        assert report.recommendations == ["Not enough data to generate recommendations"]

    def test_adherence_range_validated(self, service, target):
        with pytest.raises(ValidationError):
            service.get_adherence_report(target.id, TODAY, TODAY - timedelta(days=1), COACH)

    def test_due_for_review_scoped_to_coach(self, service, target, db, clock):
        add_profile(db, client_id="client-2")
        other_coach = Actor(id="coach-2", role="coach")
        service.create_target("client-2", other_coach, PARAMS)
        later = clock.now + timedelta(days=30)

        assert [t.id for t in service.get_targets_due_for_review(COACH, now=later)] == [target.id]
        assert len(service.get_targets_due_for_review(ADMIN, now=later)) == 2
        with pytest.raises(AuthorizationError):
            service.get_targets_due_for_review(CLIENT, now=later)

    def test_compare_with_previous(self, service, target, db, clock):
        clock.advance(days=14)
        add_profile(db, weight_kg=78.0)
        current = service.recalculate_target(CLIENT_ID, COACH)

        result = service.compare_targets(current.id, COACH)
        comparison = result["comparison"]

        assert result["previous"]["id"] == target.id
        assert comparison["effective_date_diff_days"] == 14
        assert comparison["bmr"]["change"] == -20
        assert comparison["protein"] == {"current": 172, "previous": 176, "change": -4}

    def test_compare_without_previous(self, service, target):
        result = service.compare_targets(target.id, COACH)

        assert result["message"] == "No previous target to compare"

    def test_compare_across_clients_rejected(self, service, target, db):
        add_profile(db, client_id="client-2")
        other = service.create_target("client-2", COACH, PARAMS)

        with pytest.raises(ValidationError):
            service.compare_targets(target.id, COACH, previous_id=other.id)
