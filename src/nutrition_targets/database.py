"""SQLite connection manager for the nutrition target engine.

Each unit of work opens its own short-lived connection. Writers take the
database lock up front (BEGIN IMMEDIATE) so concurrent creates and updates
for the same client serialize instead of interleaving read-modify-write.
"""
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS client_profiles (
    client_id TEXT PRIMARY KEY,
    weight_kg REAL,
    height_cm REAL,
    age INTEGER,
    date_of_birth TEXT,
    gender TEXT,
    body_fat_pct REAL,
    activity_level TEXT,
    climate TEXT
);

CREATE TABLE IF NOT EXISTS nutrition_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id TEXT NOT NULL,
    date TEXT NOT NULL,
    calories REAL NOT NULL,
    protein REAL NOT NULL,
    carbs REAL,
    fats REAL,
    fiber REAL,
    water REAL,
    weight REAL,
    sleep_hours REAL,
    sleep_quality TEXT,
    mood TEXT,
    energy TEXT,
    target_calories REAL,
    target_protein REAL,
    adherence_calories INTEGER,
    adherence_protein INTEGER,
    within_target INTEGER,
    UNIQUE (client_id, date)
);

CREATE TABLE IF NOT EXISTS nutrition_targets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id TEXT NOT NULL,
    created_by TEXT NOT NULL,
    effective_date TEXT NOT NULL,
    next_review_date TEXT NOT NULL,
    last_reviewed_date TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    version INTEGER NOT NULL DEFAULT 1,
    figures TEXT NOT NULL,
    parameters TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT ''
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_nutrition_targets_active
    ON nutrition_targets (client_id) WHERE is_active = 1;
CREATE INDEX IF NOT EXISTS ix_nutrition_targets_client_date
    ON nutrition_targets (client_id, effective_date);
CREATE INDEX IF NOT EXISTS ix_nutrition_targets_review
    ON nutrition_targets (next_review_date);

CREATE TABLE IF NOT EXISTS target_adjustments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    target_id INTEGER NOT NULL REFERENCES nutrition_targets (id),
    timestamp TEXT NOT NULL,
    field TEXT NOT NULL,
    old_value TEXT,
    new_value TEXT,
    reason TEXT NOT NULL CHECK (length(reason) > 0),
    actor TEXT NOT NULL,
    client_feedback TEXT
);

CREATE INDEX IF NOT EXISTS ix_target_adjustments_target
    ON target_adjustments (target_id, id);

CREATE TABLE IF NOT EXISTS adjust_rules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id TEXT NOT NULL,
    created_by TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    conditions TEXT NOT NULL,
    actions TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    auto_apply INTEGER NOT NULL DEFAULT 0,
    check_frequency TEXT NOT NULL DEFAULT 'weekly',
    last_checked TEXT,
    last_triggered TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_adjust_rules_client
    ON adjust_rules (client_id, is_active);

CREATE TABLE IF NOT EXISTS rule_triggers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    rule_id INTEGER NOT NULL REFERENCES adjust_rules (id) ON DELETE CASCADE,
    triggered_at TEXT NOT NULL,
    conditions TEXT NOT NULL,
    condition_results TEXT NOT NULL,
    adjustments_made TEXT,
    approved INTEGER NOT NULL DEFAULT 0,
    approved_by TEXT,
    approved_at TEXT,
    evidence_through TEXT
);

CREATE INDEX IF NOT EXISTS ix_rule_triggers_rule
    ON rule_triggers (rule_id, id);
"""


class NutritionDatabase:
    """
    SQLite database holding profiles, logs, targets and rules.

    Uses a fresh connection per unit of work. Pass a connection obtained
    from transaction() into store methods to make several writes commit
    or roll back together.
    """

    def __init__(self, path: str, timeout: float = 30.0):
        self.path = str(path)
        self.timeout = timeout

    def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(SCHEMA)
        log.info(f"[DB] Schema ready at {self.path}")

    @contextmanager
    def connect(self, read_only: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """Get a connection in autocommit mode.

        read_only opens the file in URI mode=ro so collaborators consuming
        logs can never write to them.
        """
        if read_only:
            conn = sqlite3.connect(
                f"file:{self.path}?mode=ro",
                uri=True,
                timeout=self.timeout,
                check_same_thread=False,
            )
        else:
            conn = sqlite3.connect(
                self.path,
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        conn.row_factory = sqlite3.Row  # Enable dict-like row access
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self, conn: Optional[sqlite3.Connection] = None
    ) -> Generator[sqlite3.Connection, None, None]:
        """
        Run a block inside one write transaction.

        When conn is given the caller already owns a transaction and this
        simply yields it; commit and rollback stay with the outer block.
        """
        if conn is not None:
            yield conn
            return

        with self.connect() as own:
            own.execute("BEGIN IMMEDIATE")
            try:
                yield own
            except BaseException:
                own.execute("ROLLBACK")
                raise
            else:
                own.execute("COMMIT")
