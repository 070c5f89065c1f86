"""Nutrition Target Engine.

Deterministic metabolic calculations, versioned nutrition targets with an
append-only adjustment ledger, and the service operations built on them.
"""

from .access import SYSTEM_ACTOR, Actor
from .calculator import calculate_targets
from .database import NutritionDatabase
from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    NutritionEngineError,
    ValidationError,
)
from .providers import (
    BiometricProfile,
    DailyLog,
    HttpBiometricProvider,
    SQLiteBiometricProvider,
    SQLiteLogStore,
)
from .service import NutritionTargetService
from .store import TargetStore
from .targets import NutritionTarget, TargetFigures, TargetParameters, TargetUpdate

__all__ = [
    "Actor",
    "AuthorizationError",
    "BiometricProfile",
    "ConflictError",
    "DailyLog",
    "HttpBiometricProvider",
    "NotFoundError",
    "NutritionDatabase",
    "NutritionEngineError",
    "NutritionTarget",
    "NutritionTargetService",
    "SQLiteBiometricProvider",
    "SQLiteLogStore",
    "SYSTEM_ACTOR",
    "TargetFigures",
    "TargetParameters",
    "TargetStore",
    "TargetUpdate",
    "ValidationError",
    "calculate_targets",
]
