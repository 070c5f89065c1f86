"""
Pytest fixtures for the nutrition target engine tests.
"""
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Ensure src/ is on sys.path so tests can import nutrition_targets and auto_adjust.
ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Load environment variables
load_dotenv()

from auto_adjust import NotificationQueue, RuleEngine, RuleStore  # noqa: E402
from nutrition_targets import (  # noqa: E402
    Actor,
    NutritionDatabase,
    NutritionTargetService,
    SQLiteBiometricProvider,
    SQLiteLogStore,
    TargetStore,
)
from nutrition_targets.providers import compute_adherence  # noqa: E402


# ============================================================================
# Shared constants
# ============================================================================

START = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
TODAY = START.date()

COACH = Actor(id="coach-1", role="coach")
ADMIN = Actor(id="admin-1", role="admin")
CLIENT_ID = "client-1"
CLIENT = Actor(id=CLIENT_ID, role="client")

# 80 kg / 180 cm / 30 y male, moderately active:
# BMR 1780, TDEE 2759, weight-loss target at 0.5 kg/week 2209 kcal
DEFAULT_PROFILE = {
    "weight_kg": 80.0,
    "height_cm": 180.0,
    "age": 30,
    "gender": "male",
    "activity_level": "moderately_active",
    "body_fat_pct": None,
    "climate": "moderate",
}


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float = 0, **kwargs) -> datetime:
        self.now += timedelta(days=days, **kwargs)
        return self.now


# ============================================================================
# Database helpers
# ============================================================================


def add_profile(db: NutritionDatabase, client_id: str = CLIENT_ID, **overrides) -> dict:
    """Insert or replace a client profile row."""
    profile = {**DEFAULT_PROFILE, **overrides}
    with db.transaction() as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO client_profiles (
                client_id, weight_kg, height_cm, age, date_of_birth, gender,
                body_fat_pct, activity_level, climate
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                client_id,
                profile["weight_kg"],
                profile["height_cm"],
                profile["age"],
                profile.get("date_of_birth"),
                profile["gender"],
                profile["body_fat_pct"],
                profile["activity_level"],
                profile["climate"],
            ),
        )
    return profile


def add_log(
    db: NutritionDatabase,
    day: date,
    client_id: str = CLIENT_ID,
    calories: float = 2200,
    protein: float = 170,
    target_calories: float = 2200,
    target_protein: float = 176,
    **fields,
) -> None:
    """Insert one daily log; adherence is derived the way the log store records it."""
    adherence = compute_adherence(calories, protein, target_calories, target_protein)
    if "within_target" in fields:
        adherence["within_target"] = fields.pop("within_target")
    within = adherence.get("within_target")
    with db.transaction() as conn:
        conn.execute(
            """
            INSERT INTO nutrition_logs (
                client_id, date, calories, protein, weight, sleep_quality, energy,
                target_calories, target_protein,
                adherence_calories, adherence_protein, within_target
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                client_id,
                day.isoformat(),
                calories,
                protein,
                fields.get("weight"),
                fields.get("sleep_quality"),
                fields.get("energy"),
                target_calories,
                target_protein,
                adherence.get("adherence_calories"),
                adherence.get("adherence_protein"),
                None if within is None else int(within),
            ),
        )


def add_weight_series(db: NutritionDatabase, weights, end: date = TODAY, client_id: str = CLIENT_ID, **fields):
    """One weighed log per day, the last one dated end."""
    weights = list(weights)
    for offset, weight in enumerate(weights):
        day = end - timedelta(days=len(weights) - 1 - offset)
        add_log(db, day, client_id=client_id, weight=weight, **fields)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def db(tmp_path):
    """Fresh on-disk database (the log store opens it read-only)."""
    database = NutritionDatabase(str(tmp_path / "nutrition.db"))
    database.initialize()
    return database


@pytest.fixture
def profile(db):
    return add_profile(db)


@pytest.fixture
def target_store(db, clock):
    return TargetStore(db, clock=clock)


@pytest.fixture
def log_store(db):
    return SQLiteLogStore(db)


@pytest.fixture
def service(db, target_store, log_store, clock):
    return NutritionTargetService(
        target_store, SQLiteBiometricProvider(db, today=lambda: TODAY), log_store, clock=clock
    )


@pytest.fixture
def rule_store(db, clock):
    return RuleStore(db, clock=clock)


@pytest.fixture
def notifications():
    return NotificationQueue()


@pytest.fixture
def engine(rule_store, target_store, log_store, notifications, clock):
    return RuleEngine(rule_store, target_store, log_store, notifications=notifications, clock=clock)
