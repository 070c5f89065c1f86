"""Auto-adjust rule API routes."""
from fastapi import APIRouter, Query, Response

from nutrition_targets import Actor
from nutrition_targets.access import ensure_elevated

from ..database import ActorDep, CoachingServices, ServicesDep
from ..models.rules import CreateRuleRequest, UpdateRuleRequest

router = APIRouter(prefix="/api/nutrition/rules", tags=["Rules"])


@router.post("", status_code=201)
def create_rule(
    request: CreateRuleRequest,
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    rule = services.engine.create_rule(
        request.client_id,
        actor,
        request.name,
        request.conditions.to_conditions(),
        request.actions.to_actions(),
        description=request.description,
        auto_apply=request.auto_apply,
        check_frequency=request.check_frequency,
    )
    return rule.to_dict()


@router.get("/clients/{client_id}")
def list_rules(
    client_id: str,
    active_only: bool = Query(default=True),
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    return [r.to_dict() for r in services.engine.list_rules(client_id, actor, active_only)]


@router.post("/clients/{client_id}/check")
def check_rules(client_id: str, actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    """
    Check every active rule of a client now.

    Triggered rules either auto-apply their adjustment or wait for approval.
    Each rule's outcome is reported separately.
    """
    return [r.to_dict() for r in services.engine.check_rules(client_id, actor)]


@router.post("/check-due")
def check_due_rules(actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    """Run one scheduler pass over rules whose check frequency has elapsed."""
    ensure_elevated(actor, "run rule checks")
    return services.scheduler.run_once().to_dict()


@router.get("/scheduler/status")
def get_scheduler_status(actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    ensure_elevated(actor, "view the rule scheduler")
    return {**services.scheduler.get_status(), "history": services.scheduler.get_history()}


@router.get("/{rule_id}")
def get_rule(rule_id: int, actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    return services.engine.get_rule(rule_id, actor).to_dict()


@router.patch("/{rule_id}")
def update_rule(
    rule_id: int,
    request: UpdateRuleRequest,
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    return services.engine.update_rule(rule_id, actor, request.to_changes()).to_dict()


@router.delete("/{rule_id}", status_code=204)
def delete_rule(rule_id: int, actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    services.engine.delete_rule(rule_id, actor)
    return Response(status_code=204)


@router.post("/{rule_id}/approve")
def approve_rule(rule_id: int, actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    """Apply a pending rule adjustment to the client's active target."""
    return services.engine.approve_rule(rule_id, actor).to_dict()
