"""API route modules."""
from .notifications import router as notifications_router
from .rules import router as rules_router
from .targets import router as targets_router

__all__ = [
    "notifications_router",
    "rules_router",
    "targets_router",
]
