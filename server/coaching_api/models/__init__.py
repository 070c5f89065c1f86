"""Pydantic request models for the coaching API."""
from .rules import CreateRuleRequest, UpdateRuleRequest
from .targets import (
    CreateTargetRequest,
    PreviewRequest,
    RecalculateRequest,
    UpdateTargetRequest,
)

__all__ = [
    "CreateRuleRequest",
    "UpdateRuleRequest",
    "CreateTargetRequest",
    "PreviewRequest",
    "RecalculateRequest",
    "UpdateTargetRequest",
]
