"""Rule notification API routes, including a real-time SSE stream."""
import json
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from nutrition_targets import Actor
from nutrition_targets.access import ensure_can_read, ensure_elevated

from ..database import ActorDep, CoachingServices, ServicesDep

router = APIRouter(prefix="/api/nutrition/notifications", tags=["Notifications"])


@router.get("/stream")
async def stream_notifications(
    include_history: bool = Query(True, description="Include recent notifications on connect"),
    history_count: int = Query(10, ge=0, le=50, description="Number of historical notifications"),
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    """
    Stream rule notifications via Server-Sent Events (SSE).

    Clients only receive notifications about themselves. The stream never
    closes; clients should handle reconnection.

    Usage with curl:
        curl -N -H "X-Actor-Id: coach-1" -H "X-Actor-Role: coach" \\
            http://localhost:8083/api/nutrition/notifications/stream
    """
    queue = services.notifications

    async def event_generator():
        async for notification in queue.subscribe(
            include_history=include_history,
            history_count=history_count,
        ):
            if not actor.is_elevated and notification.client_id != actor.id:
                continue
            data = json.dumps(notification.to_dict())
            yield f"event: notification\ndata: {data}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/history")
def get_notification_history(
    count: int = Query(50, ge=1, le=100, description="Number of notifications to return"),
    client_id: Optional[str] = Query(None, description="Only notifications about this client"),
    actor: Actor = ActorDep,
    services: CoachingServices = ServicesDep,
):
    """Recent notifications, newest first."""
    if not actor.is_elevated:
        client_id = client_id or actor.id
    if client_id is not None:
        ensure_can_read(actor, client_id)
    return [n.to_dict() for n in services.notifications.get_history(count, client_id=client_id)]


@router.get("/stats")
def get_notification_stats(actor: Actor = ActorDep, services: CoachingServices = ServicesDep):
    ensure_elevated(actor, "view notification statistics")
    return services.notifications.get_stats()
