"""Thread-safe in-memory notification queue for rule events.

Rule checks publish here when a rule asks for its coach or client to be
notified. Subscribers (the SSE endpoint) read from the queue; delivering
notifications anywhere else is left to downstream consumers.
"""
import asyncio
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, List, Optional


class NotificationType(str, Enum):
    """Types of rule notifications."""
    ADJUSTMENT_APPLIED = "adjustment_applied"
    APPROVAL_REQUIRED = "approval_required"
    ADJUSTMENT_APPROVED = "adjustment_approved"
    ADJUSTMENT_FAILED = "adjustment_failed"


@dataclass
class RuleNotification:
    """A rule event addressed to a coach and/or a client."""

    notification_type: NotificationType
    title: str
    message: str
    client_id: str
    rule_id: int
    recipients: List[str] = field(default_factory=list)  # coach, client
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    severity: str = "info"  # info, warning
    target_id: Optional[int] = None
    changes: Optional[dict] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "id": self.id,
            "notification_type": self.notification_type.value,
            "title": self.title,
            "message": self.message,
            "client_id": self.client_id,
            "rule_id": self.rule_id,
            "recipients": self.recipients,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity,
        }
        if self.target_id is not None:
            result["target_id"] = self.target_id
        if self.changes:
            result["changes"] = self.changes
        return result


class NotificationQueue:
    """Thread-safe in-memory queue for rule notifications.

    Supports multiple SSE subscribers and keeps a history buffer so new
    connections can catch up on recent events.
    """

    def __init__(self, max_history: int = 100):
        self._history: deque = deque(maxlen=max_history)
        self._subscribers: List[asyncio.Queue] = []
        self._lock = threading.Lock()
        self._stats = {
            "total_published": 0,
            "total_subscribers": 0,
            "notifications_by_type": {},
        }

    def publish(self, notification: RuleNotification) -> None:
        """Publish a notification to all subscribers.

        Thread-safe; the scheduler publishes from its timer thread.
        """
        with self._lock:
            self._history.append(notification)

            self._stats["total_published"] += 1
            kind = notification.notification_type.value
            self._stats["notifications_by_type"][kind] = (
                self._stats["notifications_by_type"].get(kind, 0) + 1
            )

            full_subscribers = []
            for queue in self._subscribers:
                try:
                    queue.put_nowait(notification)
                except asyncio.QueueFull:
                    full_subscribers.append(queue)

            for queue in full_subscribers:
                self._subscribers.remove(queue)

    async def subscribe(
        self,
        include_history: bool = True,
        history_count: int = 10,
    ) -> AsyncIterator[RuleNotification]:
        """Yield notifications as they arrive, optionally starting with recent history."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=100)

        with self._lock:
            self._subscribers.append(queue)
            self._stats["total_subscribers"] += 1

            if include_history and history_count:
                for notification in list(self._history)[-history_count:]:
                    queue.put_nowait(notification)

        try:
            while True:
                yield await queue.get()
        finally:
            with self._lock:
                if queue in self._subscribers:
                    self._subscribers.remove(queue)

    def get_history(self, count: int = 50, client_id: Optional[str] = None) -> List[RuleNotification]:
        """Recent notifications, newest first."""
        with self._lock:
            items = list(self._history)
        if client_id is not None:
            items = [n for n in items if n.client_id == client_id]
        return items[-count:][::-1]

    def get_stats(self) -> dict:
        with self._lock:
            return {
                **self._stats,
                "current_subscribers": len(self._subscribers),
                "history_size": len(self._history),
            }

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()


# Global singleton instance
notification_queue = NotificationQueue()
