"""Wiring of the engine's stores and services for the API.

All stores share one SQLite database file; each request opens its own
short-lived connections through NutritionDatabase.
"""
import logging
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, Header

from auto_adjust import NotificationQueue, RuleCheckScheduler, RuleEngine, RuleStore, notification_queue
from nutrition_targets import (
    Actor,
    HttpBiometricProvider,
    NutritionDatabase,
    NutritionTargetService,
    SQLiteBiometricProvider,
    SQLiteLogStore,
    TargetStore,
)
from nutrition_targets.store import utcnow

from .config import Settings, get_settings

log = logging.getLogger(__name__)


class CoachingServices:
    """
    Stores, services and the rule engine built from settings.

    Tests build their own instance against a temporary database and
    install it with app.dependency_overrides[get_services].
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        notifications: Optional[NotificationQueue] = None,
    ):
        self.settings = settings or get_settings()
        self.db = NutritionDatabase(self.settings.database_path, timeout=self.settings.db_timeout_seconds)
        self.db.initialize()

        if self.settings.profile_service_url:
            self.profiles = HttpBiometricProvider(
                self.settings.profile_service_url,
                timeout=self.settings.profile_service_timeout,
            )
        else:
            self.profiles = SQLiteBiometricProvider(self.db)

        self.targets = TargetStore(self.db, self.settings.review_interval_days, clock=clock)
        self.logs = SQLiteLogStore(self.db)
        self.rules = RuleStore(self.db, clock=clock)
        self.notifications = notifications if notifications is not None else notification_queue

        self.service = NutritionTargetService(self.targets, self.profiles, self.logs, clock=clock)
        self.engine = RuleEngine(
            self.rules,
            self.targets,
            self.logs,
            notifications=self.notifications,
            clock=clock,
        )
        self.scheduler = RuleCheckScheduler(self.engine)
        log.info(f"[DB] Coaching services ready on {self.settings.database_path}")


@lru_cache
def get_services() -> CoachingServices:
    return CoachingServices()


def get_actor(
    x_actor_id: str = Header(..., description="Identity of the caller"),
    x_actor_role: str = Header("client", description="client, coach or admin"),
) -> Actor:
    """Caller identity as asserted by the upstream gateway."""
    return Actor(id=x_actor_id, role=x_actor_role)


ServicesDep = Depends(get_services)
ActorDep = Depends(get_actor)
