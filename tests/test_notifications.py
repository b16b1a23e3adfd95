import json
from unittest.mock import MagicMock, patch

import pytest

from notifications.models import Notification
from notifications.services import NotificationDispatcher, RedisPublisher, get_dispatcher, user_channel
from tests.conftest import make_user


def result_for(percentage=50):
    return {
        "contest_id": "c-1",
        "contest_title": "Weekly Contest",
        "score": 5,
        "total": 10,
        "percentage": percentage,
        "completed_at": None,
        "time_taken": 12,
        "rank": 1,
        "auto_submitted": False,
    }


@pytest.mark.django_db
class TestDispatcher:
    def test_send_to_user_persists_and_publishes(self, student):
        publisher = MagicMock()
        n = NotificationDispatcher(publisher=publisher).send_to_user(student, "Hi", "Hello there")
        assert Notification.objects.get().pk == n.pk
        channel, event = publisher.publish.call_args.args
        assert channel == user_channel(student.pk) == f"user-{student.pk}"
        assert event["title"] == "Hi"
        assert event["event"] == "new-notification"

    def test_push_failure_is_swallowed(self, student):
        publisher = MagicMock()
        publisher.publish.side_effect = ConnectionError("redis down")
        n = NotificationDispatcher(publisher=publisher).send_to_user(student, "Hi", "Hello")
        assert n is not None
        assert Notification.objects.count() == 1

    def test_role_fanout(self, student, moderator, admin_user):
        created = NotificationDispatcher().send_to_role("moderator", "T", "M")
        assert [n.user_id for n in created] == [moderator.pk]

    def test_send_result_without_high_score(self, student):
        mailer = MagicMock()
        NotificationDispatcher(mailer=mailer).send_result(student, result_for(50))
        mailer.send_result_email.assert_called_once()
        assert list(Notification.objects.values_list("type", flat=True)) == ["RESULT_AVAILABLE"]

    def test_send_result_with_high_score(self, student):
        NotificationDispatcher(mailer=MagicMock()).send_result(student, result_for(80))
        assert set(Notification.objects.values_list("type", flat=True)) == {"RESULT_AVAILABLE", "HIGH_SCORE"}

    def test_email_failure_does_not_stop_in_app(self, student):
        mailer = MagicMock()
        mailer.send_result_email.side_effect = RuntimeError("smtp")
        NotificationDispatcher(mailer=mailer).send_result(student, result_for(10))
        assert Notification.objects.filter(type="RESULT_AVAILABLE").count() == 1

    def test_reminder_emails_everyone(self, student, other_student, live_contest, mailoutbox):
        sent = NotificationDispatcher().notify_contest_reminder(live_contest)
        assert sent == 2
        assert len(mailoutbox) == 2
        assert "starts in 1 hour" in mailoutbox[0].subject

    def test_inactive_users_skipped(self, student):
        make_user("gone@example.com", is_active=False)
        created = NotificationDispatcher().send_to_all_users("T", "M")
        assert [n.user_id for n in created] == [student.pk]


class TestPublisher:
    @patch("notifications.services.redis.Redis.from_url")
    def test_publish_json(self, from_url):
        client = from_url.return_value
        RedisPublisher("redis://localhost:6379/0").publish("user-1", {"a": 1})
        channel, body = client.publish.call_args.args
        assert channel == "user-1"
        assert json.loads(body) == {"a": 1}

    @patch("notifications.services.redis.Redis.from_url")
    def test_factory_honours_setting(self, from_url, settings):
        settings.NOTIFICATIONS_PUSH_ENABLED = True
        assert isinstance(get_dispatcher().publisher, RedisPublisher)
        settings.NOTIFICATIONS_PUSH_ENABLED = False
        assert not isinstance(get_dispatcher().publisher, RedisPublisher)


@pytest.mark.django_db
class TestNotificationApi:
    def test_list_count_read(self, student_client, student, other_student):
        d = NotificationDispatcher()
        for i in range(25):
            d.send_to_user(student, f"N{i}", "m")
        d.send_to_user(other_student, "not yours", "m")

        listed = student_client.get("/api/notifications/")
        assert len(listed.data) == 20
        assert listed.data[0]["title"] == "N24"

        assert student_client.get("/api/notifications/unread-count/").data == {"count": 25}

        first = Notification.objects.filter(user=student).first()
        assert student_client.patch(f"/api/notifications/{first.pk}/read/").data["is_read"] is True
        assert student_client.get("/api/notifications/unread-count/").data == {"count": 24}

        assert student_client.patch("/api/notifications/read-all/").data == {"updated": 24}
        assert student_client.get("/api/notifications/unread-count/").data == {"count": 0}

    def test_cannot_touch_others(self, student_client, other_student):
        n = NotificationDispatcher().send_to_user(other_student, "private", "m")
        assert student_client.patch(f"/api/notifications/{n.pk}/read/").status_code == 404
        assert student_client.delete(f"/api/notifications/{n.pk}/").status_code == 404

    def test_delete_and_test_endpoint(self, student_client, student):
        created = student_client.post("/api/notifications/test/", {}, format="json")
        assert created.status_code == 201
        assert student_client.delete(f"/api/notifications/{created.data['id']}/").status_code == 204
        assert not Notification.objects.filter(user=student).exists()

    def test_system_update_broadcast(self, admin_client, student, other_student, admin_user):
        resp = admin_client.post("/api/notifications/system-update/",
                                 {"message": "Maintenance tonight at 22:00"}, format="json")
        assert resp.status_code == 201
        assert resp.data == {"sent": 3}
        rows = Notification.objects.filter(type="SYSTEM_UPDATE")
        assert sorted(rows.values_list("user_id", flat=True)) == sorted([student.pk, other_student.pk, admin_user.pk])
        assert rows.first().message == "Maintenance tonight at 22:00"

    def test_system_update_admin_only(self, moderator_client, student_client, admin_client):
        body = {"message": "hello"}
        assert student_client.post("/api/notifications/system-update/", body, format="json").status_code == 403
        assert moderator_client.post("/api/notifications/system-update/", body, format="json").status_code == 403
        assert admin_client.post("/api/notifications/system-update/", {"message": " "}, format="json").status_code == 400
        assert not Notification.objects.filter(type="SYSTEM_UPDATE").exists()
