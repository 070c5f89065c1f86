#!/usr/bin/env python3
"""
Populate the nutrition SQLite database with demo clients and daily logs.

Creates client profiles and four weeks of daily nutrition logs per client,
each client following a different trend so auto-adjust rules have
something to react to.

Usage:
    python scripts/populate_databases.py [--db PATH] [--days N]
"""
import argparse
import os
import random
import sys
from datetime import date, timedelta
from pathlib import Path

# Base directory (project root)
BASE_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BASE_DIR / "src"))

from nutrition_targets.database import NutritionDatabase  # noqa: E402
from nutrition_targets.providers import compute_adherence  # noqa: E402

DEFAULT_DB = BASE_DIR / "data" / "nutrition.db"

# One entry per demo client. weight_trend is kg/day; adherence is the
# chance a day lands within 10% of the calorie target.
DEMO_CLIENTS = [
    {
        "profile": {
            "client_id": "client-plateau",
            "weight_kg": 86.0,
            "height_cm": 178,
            "date_of_birth": "1990-04-12",
            "gender": "male",
            "activity_level": "moderately_active",
            "climate": "moderate",
        },
        "target_calories": 2300,
        "target_protein": 170,
        "weight_trend": 0.0,
        "adherence": 0.9,
        "low_energy": 0.1,
    },
    {
        "profile": {
            "client_id": "client-fast-loss",
            "weight_kg": 72.0,
            "height_cm": 165,
            "date_of_birth": "1985-09-03",
            "gender": "female",
            "body_fat_pct": 28.0,
            "activity_level": "lightly_active",
            "climate": "hot",
        },
        "target_calories": 1600,
        "target_protein": 130,
        "weight_trend": -0.16,
        "adherence": 0.85,
        "low_energy": 0.7,
    },
    {
        "profile": {
            "client_id": "client-gaining",
            "weight_kg": 68.0,
            "height_cm": 182,
            "date_of_birth": "2000-01-22",
            "gender": "male",
            "activity_level": "very_active",
            "climate": "moderate",
        },
        "target_calories": 3100,
        "target_protein": 150,
        "weight_trend": 0.05,
        "adherence": 0.6,
        "low_energy": 0.2,
    },
]

ENERGY_LEVELS = ["very_low", "low", "moderate", "high", "very_high"]
SLEEP_QUALITIES = ["poor", "fair", "good", "excellent"]


def generate_logs(client: dict, days: int, end: date, rng: random.Random) -> list:
    """Build log rows for one client, oldest first."""
    rows = []
    weight = client["profile"]["weight_kg"] - client["weight_trend"] * days
    for offset in range(days, 0, -1):
        day = end - timedelta(days=offset - 1)
        weight += client["weight_trend"] + rng.uniform(-0.15, 0.15)

        target_calories = client["target_calories"]
        target_protein = client["target_protein"]
        if rng.random() < client["adherence"]:
            calories = target_calories * rng.uniform(0.92, 1.08)
        else:
            calories = target_calories * rng.choice([rng.uniform(0.7, 0.88), rng.uniform(1.12, 1.3)])
        protein = target_protein * rng.uniform(0.8, 1.1)

        if rng.random() < client["low_energy"]:
            energy = rng.choice(ENERGY_LEVELS[:2])
            sleep_quality = rng.choice(SLEEP_QUALITIES[:2])
        else:
            energy = rng.choice(ENERGY_LEVELS[2:])
            sleep_quality = rng.choice(SLEEP_QUALITIES[2:])

        adherence = compute_adherence(calories, protein, target_calories, target_protein)
        rows.append(
            (
                client["profile"]["client_id"],
                day.isoformat(),
                round(calories),
                round(protein),
                round(calories * 0.45 / 4),
                round(calories * 0.3 / 9),
                round(rng.uniform(18, 35)),
                round(rng.uniform(1.8, 3.5), 1),
                round(weight, 1),
                round(rng.uniform(5.5, 8.5), 1),
                sleep_quality,
                rng.choice(["low", "neutral", "good"]),
                energy,
                target_calories,
                target_protein,
                adherence["adherence_calories"],
                adherence["adherence_protein"],
                int(adherence["within_target"]),
            )
        )
    return rows


def populate_database(db_path: Path, days: int, seed: int = 42) -> int:
    """
    Recreate the database with demo profiles and logs.

    Returns:
        Number of log rows inserted
    """
    if db_path.exists():
        os.remove(db_path)
        print(f"  Removed existing: {db_path.name}")

    db = NutritionDatabase(str(db_path))
    db.initialize()
    rng = random.Random(seed)
    end = date.today()
    total = 0

    with db.transaction() as conn:
        for client in DEMO_CLIENTS:
            profile = client["profile"]
            conn.execute(
                """
                INSERT INTO client_profiles (
                    client_id, weight_kg, height_cm, date_of_birth, gender,
                    body_fat_pct, activity_level, climate
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    profile["client_id"],
                    profile["weight_kg"],
                    profile["height_cm"],
                    profile["date_of_birth"],
                    profile["gender"],
                    profile.get("body_fat_pct"),
                    profile["activity_level"],
                    profile["climate"],
                ),
            )
            rows = generate_logs(client, days, end, rng)
            conn.executemany(
                """
                INSERT INTO nutrition_logs (
                    client_id, date, calories, protein, carbs, fats, fiber, water,
                    weight, sleep_hours, sleep_quality, mood, energy,
                    target_calories, target_protein,
                    adherence_calories, adherence_protein, within_target
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            print(f"  {profile['client_id']}: {len(rows)} daily logs")
            total += len(rows)

    return total


def main():
    """Populate the nutrition database."""
    parser = argparse.ArgumentParser(description="Seed the nutrition database with demo data")
    parser.add_argument("--db", type=Path, default=DEFAULT_DB, help="Database file to create")
    parser.add_argument("--days", type=int, default=28, help="Days of logs per client")
    args = parser.parse_args()

    print("=" * 60)
    print("Nutrition Coaching Database Population Script")
    print("=" * 60)
    print(f"\nDatabase: {args.db}\n")

    total_rows = populate_database(args.db, args.days)

    print()
    print("=" * 60)
    print(f"Complete! {len(DEMO_CLIENTS)} clients, {total_rows} daily logs")
    print("=" * 60)

    size_kb = args.db.stat().st_size / 1024
    print(f"\nDatabase file: {args.db} ({size_kb:.1f} KB)")


if __name__ == "__main__":
    main()
