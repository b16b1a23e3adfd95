# notifications/services.py
"""
In-app + real-time notification fan-out.

A NotificationDispatcher stores one Notification row per recipient and then
publishes it on the recipient's channel (`user-<id>`). Dispatch is
fire-and-forget: storage, push and email failures are logged and swallowed so
they never fail the request or sweep that triggered them.

Call it outside of `transaction.atomic()` blocks; a swallowed database error
inside an atomic block would poison the surrounding transaction.
"""
from __future__ import annotations

import json
import logging

import redis
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from common.enums import NotificationType
from . import emails
from .models import Notification

logger = logging.getLogger(__name__)

User = get_user_model()


def user_channel(user_id) -> str:
    return f"user-{user_id}"


class RedisPublisher:
    """Publishes JSON events on Redis pub/sub; the websocket gateway subscribes per user."""

    def __init__(self, url: str):
        self.client = redis.Redis.from_url(url, decode_responses=True)

    def publish(self, channel: str, payload: dict) -> None:
        self.client.publish(channel, json.dumps(payload, cls=DjangoJSONEncoder))


class NullPublisher:
    """Real-time push disabled (NOTIFICATIONS_PUSH_ENABLED=False)."""

    def publish(self, channel: str, payload: dict) -> None:
        return None


def _event(n: Notification) -> dict:
    return {
        "event": "new-notification",
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "data": n.data,
        "is_read": n.is_read,
        "created_at": n.created_at or timezone.now(),
    }


class NotificationDispatcher:
    def __init__(self, publisher=None, mailer=emails):
        self.publisher = publisher or NullPublisher()
        self.mailer = mailer

    # ----------------------------- fan-out -----------------------------
    def _push(self, notifications) -> None:
        for n in notifications:
            try:
                self.publisher.publish(user_channel(n.user_id), _event(n))
            except Exception:
                logger.exception("Real-time push failed for user %s", n.user_id)

    def send_to_users(self, user_ids, title: str, message: str,
                      type: str = NotificationType.GENERAL, data: dict | None = None) -> list[Notification]:
        user_ids = list(user_ids)
        if not user_ids:
            return []
        try:
            created = Notification.objects.bulk_create([
                Notification(user_id=uid, title=title, message=message, type=type, data=data or {})
                for uid in user_ids
            ])
        except Exception:
            logger.exception("Could not store %s notification for %d user(s)", type, len(user_ids))
            return []
        self._push(created)
        return created

    def send_to_user(self, user, title: str, message: str,
                     type: str = NotificationType.GENERAL, data: dict | None = None) -> Notification | None:
        user_id = getattr(user, "pk", user)
        created = self.send_to_users([user_id], title, message, type=type, data=data)
        return created[0] if created else None

    def send_to_all_users(self, title, message, type=NotificationType.GENERAL, data=None):
        ids = User.objects.filter(is_active=True).values_list("id", flat=True)
        return self.send_to_users(ids, title, message, type=type, data=data)

    def send_to_role(self, role: str, title, message, type=NotificationType.GENERAL, data=None):
        ids = User.objects.filter(is_active=True, role=role).values_list("id", flat=True)
        return self.send_to_users(ids, title, message, type=type, data=data)

    # ------------------------ contest lifecycle ------------------------
    def _contest_data(self, contest) -> dict:
        return {"contest_id": str(contest.id), "contest_title": contest.title}

    def notify_contest_announced(self, contest):
        start = timezone.localtime(contest.start_time).strftime("%d %b %Y, %I:%M %p")
        return self.send_to_all_users(
            "New Contest Announced!",
            f'A new contest "{contest.title}" has been announced. Start time: {start}',
            type=NotificationType.CONTEST_ANNOUNCED,
            data=self._contest_data(contest),
        )

    def notify_contest_started(self, contest):
        return self.send_to_all_users(
            "Contest Started!",
            f'The contest "{contest.title}" has started. Good luck!',
            type=NotificationType.CONTEST_STARTED,
            data=self._contest_data(contest),
        )

    def notify_contest_ended(self, contest):
        return self.send_to_all_users(
            "Contest Ended",
            f'The contest "{contest.title}" has ended. Results will be available soon.',
            type=NotificationType.CONTEST_ENDED,
            data=self._contest_data(contest),
        )

    def notify_contest_reminder(self, contest) -> int:
        sent = 0
        for user in User.objects.filter(is_active=True).only("id", "email", "full_name"):
            if self.mailer.send_contest_reminder_email(user, contest):
                sent += 1
        return sent

    # ----------------------------- results -----------------------------
    def notify_result_available(self, user, result: dict):
        return self.send_to_user(
            user,
            "Your Result is Available!",
            f'Your result for "{result["contest_title"]}" is now available. '
            "Check your dashboard to view your performance.",
            type=NotificationType.RESULT_AVAILABLE,
            data={
                "contest_id": str(result["contest_id"]),
                "title": result["contest_title"],
                "score": result["score"],
                "total": result["total"],
                "percentage": result["percentage"],
                "auto_submitted": bool(result.get("auto_submitted")),
            },
        )

    def notify_high_score(self, user, result: dict):
        percentage = result.get("percentage") or 0
        if percentage < settings.HIGH_SCORE_THRESHOLD:
            return None
        return self.send_to_user(
            user,
            "Outstanding Performance!",
            f'You scored {percentage}% in "{result["contest_title"]}". Keep it up!',
            type=NotificationType.HIGH_SCORE,
            data={"contest_id": str(result["contest_id"]), "percentage": percentage},
        )

    def send_result(self, user, result: dict) -> None:
        """Email + in-app result notification (+ high-score badge when earned)."""
        try:
            self.mailer.send_result_email(user, result)
        except Exception:
            logger.exception("Result email failed for user %s", getattr(user, "pk", user))
        self.notify_result_available(user, result)
        self.notify_high_score(user, result)

    # ------------------------------ misc -------------------------------
    def notify_new_question(self, question):
        return self.send_to_role(
            User.Roles.MODERATOR,
            "New Question Added",
            f"A new {question.category} question has been added to the platform.",
            type=NotificationType.NEW_QUESTION,
            data={"question_id": str(question.id), "category": question.category},
        )

    def notify_system_update(self, message: str):
        return self.send_to_all_users("System Update", message, type=NotificationType.SYSTEM_UPDATE)


def get_dispatcher() -> NotificationDispatcher:
    """Production dispatcher built from settings."""
    if settings.NOTIFICATIONS_PUSH_ENABLED:
        return NotificationDispatcher(publisher=RedisPublisher(settings.REDIS_URL))
    return NotificationDispatcher()
