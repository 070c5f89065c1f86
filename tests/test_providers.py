"""
Tests for the biometric providers and the daily log store.

Usage:
    pytest tests/test_providers.py -v
"""
import sqlite3
from datetime import date, timedelta

import httpx
import pytest

from conftest import CLIENT_ID, TODAY, add_log, add_profile
from nutrition_targets.errors import NotFoundError, ValidationError
from nutrition_targets.providers import (
    BiometricProfile,
    HttpBiometricProvider,
    SQLiteBiometricProvider,
    age_on,
    compute_adherence,
)

REMOTE_PROFILE = {
    "weight_kg": 64.5,
    "height_cm": 168,
    "age": 41,
    "gender": "female",
    "activity_level": "lightly_active",
    "body_fat_pct": 27.5,
    "climate": "hot",
}


# ============================================================================
# SQLite profiles
# ============================================================================


class TestSQLiteBiometricProvider:
    def test_reads_profile(self, db, profile):
        provider = SQLiteBiometricProvider(db, today=lambda: TODAY)

        result = provider.get_profile(CLIENT_ID)

        assert result == BiometricProfile(**profile)

    @pytest.mark.parametrize(
        "dob,expected",
        [("1995-03-01", 30), ("1995-03-02", 29), ("1995-02-28", 30)],
    )
    def test_age_from_date_of_birth(self, db, dob, expected):
        add_profile(db, age=None, date_of_birth=dob)
        provider = SQLiteBiometricProvider(db, today=lambda: TODAY)

        assert provider.get_profile(CLIENT_ID).age == expected

    def test_missing_profile(self, db):
        provider = SQLiteBiometricProvider(db)

        with pytest.raises(NotFoundError):
            provider.get_profile("ghost")

    def test_missing_required_field(self, db):
        add_profile(db, gender=None)
        provider = SQLiteBiometricProvider(db)

        with pytest.raises(ValidationError) as exc:
            provider.get_profile(CLIENT_ID)

        assert exc.value.field == "gender"

    def test_age_on_leap_day(self):
        assert age_on(date(2000, 2, 29), date(2025, 2, 28)) == 24
        assert age_on(date(2000, 2, 29), date(2025, 3, 1)) == 25


# ============================================================================
# Remote profile service
# ============================================================================


def profile_service(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/clients/client-1/profile":
        return httpx.Response(200, json=REMOTE_PROFILE)
    if request.url.path == "/clients/broken/profile":
        return httpx.Response(500, json={"detail": "upstream down"})
    return httpx.Response(404, json={"detail": "not found"})


@pytest.fixture
def http_provider():
    provider = HttpBiometricProvider(
        "http://profiles.test/", transport=httpx.MockTransport(profile_service)
    )
    yield provider
    provider.close()


class TestHttpBiometricProvider:
    def test_fetches_profile(self, http_provider):
        result = http_provider.get_profile(CLIENT_ID)

        assert result.weight_kg == 64.5
        assert result.body_fat_pct == 27.5
        assert result.climate == "hot"

    def test_unknown_client(self, http_provider):
        with pytest.raises(NotFoundError):
            http_provider.get_profile("ghost")

    def test_server_error_propagates(self, http_provider):
        with pytest.raises(httpx.HTTPStatusError):
            http_provider.get_profile("broken")


# ============================================================================
# Adherence flags and the log store
# ============================================================================


class TestComputeAdherence:
    def test_within_band(self):
        result = compute_adherence(2200, 170, 2000, 170)

        assert result == {"adherence_calories": 110, "adherence_protein": 100, "within_target": True}

    def test_outside_band(self):
        assert compute_adherence(2300, 120, 2000, 160)["within_target"] is False

    def test_no_target(self):
        assert compute_adherence(2300, 120, None, None) == {}

    def test_no_protein_target(self):
        assert compute_adherence(1900, 120, 2000, None)["adherence_protein"] is None


class TestSQLiteLogStore:
    def test_range_is_inclusive_and_ordered(self, db, log_store):
        for offset in (0, 3, 1, 7, 8):
            add_log(db, TODAY - timedelta(days=offset), weight=80 - offset / 10)
        add_log(db, TODAY, client_id="client-2")

        logs = log_store.query_logs(CLIENT_ID, TODAY - timedelta(days=7), TODAY)

        assert [log.date for log in logs] == [TODAY - timedelta(days=d) for d in (7, 3, 1, 0)]
        assert logs[-1].weight == 80

    def test_log_fields(self, db, log_store):
        add_log(db, TODAY, calories=2600, sleep_quality="poor", energy="low")

        log = log_store.query_logs(CLIENT_ID, TODAY, TODAY)[0]

        assert log.within_target is False
        assert log.adherence_calories == 118
        assert log.sleep_quality == "poor"
        assert log.energy == "low"

    def test_read_only_connection(self, db):
        with db.connect(read_only=True) as conn:
            with pytest.raises(sqlite3.OperationalError):
                conn.execute("DELETE FROM nutrition_logs")
