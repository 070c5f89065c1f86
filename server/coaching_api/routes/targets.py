"""Nutrition target API routes."""
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Query

from nutrition_targets import Actor

from ..database import ActorDep, CoachingServices, ServicesDep
from ..models.targets import (
    CreateTargetRequest,
    PreviewRequest,
    RecalculateRequest,
    UpdateTargetRequest,
)

router = APIRouter(prefix="/api/nutrition/targets", tags=["Targets"])


@router.post("/preview")
def preview_calculation(request: PreviewRequest, services: CoachingServices = ServicesDep):
    """Calculate figures for a profile and goal without saving anything."""
    figures = services.service.preview_calculation(
        request.profile.to_profile(), request.parameters.to_parameters()
    )
    return figures.to_dict()


@router.post("", status_code=201)
def create_target(
    request: CreateTargetRequest,
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    """
    Calculate and save a new active target for a client.

    Any previously active target of the client is deactivated.
    """
    target = services.service.create_target(
        request.client_id, actor, request.parameters.to_parameters()
    )
    return target.to_dict()


@router.get("/due-for-review")
def get_targets_due_for_review(actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    """Active targets whose review date has passed."""
    return [t.to_dict() for t in services.service.get_targets_due_for_review(actor)]


@router.get("/clients/{client_id}/active")
def get_active_target(client_id: str, actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    return services.service.get_active_target(client_id, actor).to_dict()


@router.get("/clients/{client_id}/history")
def get_target_history(
    client_id: str,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    """Targets of a client, newest first."""
    return services.service.get_target_history(client_id, actor, page, page_size).to_dict()


@router.post("/clients/{client_id}/recalculate", status_code=201)
def recalculate_target(
    client_id: str,
    request: RecalculateRequest,
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    """Supersede the active target with one calculated from the current profile."""
    return services.service.recalculate_target(client_id, actor, request.reason).to_dict()


@router.get("/{target_id}")
def get_target(target_id: int, actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    return services.service.get_target(target_id, actor).to_dict()


@router.patch("/{target_id}")
def update_target(
    target_id: int,
    request: UpdateTargetRequest,
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    """Revise a target in place; every changed field is added to its ledger."""
    target = services.service.update_target(
        target_id,
        request.to_update(),
        request.reason,
        actor,
        expected_version=request.expected_version,
    )
    return target.to_dict()


@router.get("/{target_id}/adherence")
def get_adherence_report(
    target_id: int,
    start: Optional[date] = Query(default=None, description="Defaults to 30 days before end"),
    end: Optional[date] = Query(default=None, description="Defaults to today"),
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    """Logged intake against the target over a date range, with recommendations."""
    end = end or date.today()
    start = start or end - timedelta(days=30)
    return services.service.get_adherence_report(target_id, start, end, actor).to_dict()


@router.get("/{target_id}/compare")
def compare_targets(
    target_id: int,
    previous_id: Optional[int] = Query(default=None),
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    return services.service.compare_targets(target_id, actor, previous_id)
