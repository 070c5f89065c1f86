"""
External collaborators consumed by the engine.

The biometric provider supplies a client's body metrics on demand and the
log store supplies time-ordered daily logs. Both are read-only from the
engine's point of view.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import List, Optional, Protocol

import httpx

from .database import NutritionDatabase
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Fixed tolerance band for the within-target flag
ADHERENCE_TOLERANCE = 0.10

REQUIRED_PROFILE_FIELDS = ("weight_kg", "height_cm", "age", "gender", "activity_level")


@dataclass
class BiometricProfile:
    """Body metrics needed by the calculation library."""

    weight_kg: float
    height_cm: float
    age: int
    gender: str
    activity_level: str
    body_fat_pct: Optional[float] = None
    climate: str = "moderate"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: dict) -> "BiometricProfile":
        """Build a profile, rejecting absent required fields."""
        for name in REQUIRED_PROFILE_FIELDS:
            if data.get(name) in (None, ""):
                raise ValidationError(
                    f"Client profile is missing required field: {name}",
                    field=name,
                )
        return cls(
            weight_kg=float(data["weight_kg"]),
            height_cm=float(data["height_cm"]),
            age=int(data["age"]),
            gender=str(data["gender"]),
            activity_level=str(data["activity_level"]),
            body_fat_pct=(
                float(data["body_fat_pct"])
                if data.get("body_fat_pct") not in (None, "")
                else None
            ),
            climate=data.get("climate") or "moderate",
        )


@dataclass
class DailyLog:
    """One client's logged day."""

    date: date
    calories: float
    protein: float
    carbs: Optional[float] = None
    fats: Optional[float] = None
    fiber: Optional[float] = None
    water: Optional[float] = None
    weight: Optional[float] = None
    sleep_hours: Optional[float] = None
    sleep_quality: Optional[str] = None  # poor, fair, good, excellent
    mood: Optional[str] = None
    energy: Optional[str] = None  # very_low, low, moderate, high, very_high
    target_calories: Optional[float] = None
    target_protein: Optional[float] = None
    adherence_calories: Optional[int] = None
    adherence_protein: Optional[int] = None
    within_target: Optional[bool] = None


def compute_adherence(
    calories: float,
    protein: float,
    target_calories: Optional[float],
    target_protein: Optional[float],
) -> dict:
    """Adherence percentages and the within-target flag for one day.

    Returns an empty dict when no calorie target was in force.
    """
    if not target_calories:
        return {}
    return {
        "adherence_calories": round(calories / target_calories * 100),
        "adherence_protein": (
            round(protein / target_protein * 100) if target_protein else None
        ),
        "within_target": abs(calories - target_calories) / target_calories
        <= ADHERENCE_TOLERANCE,
    }


class BiometricProvider(Protocol):
    def get_profile(self, client_id: str) -> BiometricProfile:
        ...


class LogStore(Protocol):
    def query_logs(self, client_id: str, start: date, end: date) -> List[DailyLog]:
        ...


def age_on(date_of_birth: date, today: date) -> int:
    """Whole years between a birth date and today."""
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


class SQLiteBiometricProvider:
    """Reads client profiles from the client_profiles table."""

    def __init__(self, db: NutritionDatabase, today=None):
        self.db = db
        self._today = today or date.today

    def get_profile(self, client_id: str) -> BiometricProfile:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM client_profiles WHERE client_id = ?", (client_id,)
            ).fetchone()

        if row is None:
            raise NotFoundError("Client profile", client_id)

        data = dict(row)
        if data.get("age") in (None, "") and data.get("date_of_birth"):
            dob = datetime.strptime(data["date_of_birth"], "%Y-%m-%d").date()
            data["age"] = age_on(dob, self._today())
        return BiometricProfile.from_mapping(data)


class HttpBiometricProvider:
    """Fetches profiles from a remote client-profile service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        logger.info(f"[PROFILES] Using profile service at {self.base_url}")

    def get_profile(self, client_id: str) -> BiometricProfile:
        response = self._client.get(f"/clients/{client_id}/profile")
        if response.status_code == 404:
            raise NotFoundError("Client profile", client_id)
        response.raise_for_status()
        return BiometricProfile.from_mapping(response.json())

    def close(self) -> None:
        self._client.close()


def _row_to_log(row) -> DailyLog:
    """Convert SQLite row to DailyLog."""
    within = row["within_target"]
    return DailyLog(
        date=datetime.strptime(row["date"], "%Y-%m-%d").date(),
        calories=float(row["calories"]),
        protein=float(row["protein"]),
        carbs=row["carbs"],
        fats=row["fats"],
        fiber=row["fiber"],
        water=row["water"],
        weight=row["weight"],
        sleep_hours=row["sleep_hours"],
        sleep_quality=row["sleep_quality"] or None,
        mood=row["mood"] or None,
        energy=row["energy"] or None,
        target_calories=row["target_calories"],
        target_protein=row["target_protein"],
        adherence_calories=row["adherence_calories"],
        adherence_protein=row["adherence_protein"],
        within_target=None if within is None else bool(within),
    )


class SQLiteLogStore:
    """Read-only access to the nutrition_logs table."""

    def __init__(self, db: NutritionDatabase):
        self.db = db

    def query_logs(self, client_id: str, start: date, end: date) -> List[DailyLog]:
        with self.db.connect(read_only=True) as conn:
            rows = conn.execute(
                """
                SELECT * FROM nutrition_logs
                WHERE client_id = ? AND date >= ? AND date <= ?
                ORDER BY date ASC
                """,
                (client_id, start.isoformat(), end.isoformat()),
            ).fetchall()
        return [_row_to_log(row) for row in rows]
