"""
Unit tests for the rule notification queue.

Usage:
    pytest tests/test_notifications.py -v
"""
import asyncio
import threading

import pytest

from auto_adjust.notifications import NotificationQueue, NotificationType, RuleNotification


def make_notification(client_id="client-1", kind=NotificationType.APPROVAL_REQUIRED, **kwargs):
    return RuleNotification(
        notification_type=kind,
        title="Approval required: Plateau breaker",
        message="Rule 'Plateau breaker' triggered",
        client_id=client_id,
        rule_id=1,
        recipients=["coach"],
        **kwargs,
    )


class TestRuleNotification:
    def test_to_dict(self):
        notification = make_notification()

        data = notification.to_dict()

        assert data["notification_type"] == "approval_required"
        assert data["client_id"] == "client-1"
        assert data["recipients"] == ["coach"]
        assert "target_id" not in data
        assert "changes" not in data

    def test_to_dict_with_adjustment(self):
        notification = make_notification(
            kind=NotificationType.ADJUSTMENT_APPLIED,
            target_id=3,
            changes={"calorie_target.value": {"old": 2209, "new": 2109}},
        )

        data = notification.to_dict()

        assert data["target_id"] == 3
        assert data["changes"]["calorie_target.value"]["new"] == 2109


class TestNotificationQueue:
    def test_history_newest_first(self):
        queue = NotificationQueue()
        first = make_notification()
        second = make_notification(client_id="client-2")

        queue.publish(first)
        queue.publish(second)

        assert queue.get_history() == [second, first]
        assert queue.get_history(count=1) == [second]
        assert queue.get_history(client_id="client-1") == [first]

    def test_history_is_bounded(self):
        queue = NotificationQueue(max_history=3)

        for _ in range(5):
            queue.publish(make_notification())

        assert len(queue.get_history()) == 3
        assert queue.get_stats()["total_published"] == 5

    def test_stats_by_type(self):
        queue = NotificationQueue()
        queue.publish(make_notification())
        queue.publish(make_notification(kind=NotificationType.ADJUSTMENT_APPLIED))
        queue.publish(make_notification(kind=NotificationType.ADJUSTMENT_APPLIED))

        stats = queue.get_stats()

        assert stats["notifications_by_type"] == {"approval_required": 1, "adjustment_applied": 2}
        assert stats["history_size"] == 3
        assert stats["current_subscribers"] == 0

    def test_clear_history(self):
        queue = NotificationQueue()
        queue.publish(make_notification())

        queue.clear_history()

        assert queue.get_history() == []

    def test_publish_from_threads(self):
        queue = NotificationQueue(max_history=500)

        def publish_many():
            for _ in range(50):
                queue.publish(make_notification())

        threads = [threading.Thread(target=publish_many) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert queue.get_stats()["total_published"] == 200
        assert len(queue.get_history(count=500)) == 200

    @pytest.mark.asyncio
    async def test_subscribe_replays_history_then_streams(self):
        queue = NotificationQueue()
        old = make_notification()
        queue.publish(old)

        stream = queue.subscribe(history_count=5)
        assert await asyncio.wait_for(stream.__anext__(), timeout=1.0) is old

        new = make_notification(kind=NotificationType.ADJUSTMENT_APPROVED)
        next_item = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        queue.publish(new)

        assert await asyncio.wait_for(next_item, timeout=1.0) is new
        assert queue.get_stats()["current_subscribers"] == 1
        await stream.aclose()
        assert queue.get_stats()["current_subscribers"] == 0
