# notifications/emails.py
"""
Transactional emails. Every sender is best-effort: failures are logged and
reported as False, never raised to the request that triggered them.
"""
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils.html import strip_tags

logger = logging.getLogger(__name__)

SMTP_BACKEND = "django.core.mail.backends.smtp.EmailBackend"


def _mail_configured() -> bool:
    if settings.EMAIL_BACKEND == SMTP_BACKEND and not settings.EMAIL_HOST_USER:
        logger.warning("Email credentials not configured (EMAIL_HOST_USER); skipping email.")
        return False
    return True


def _send(subject: str, template: str, context: dict, to: str | None) -> bool:
    if not to or not _mail_configured():
        return False
    context = {"frontend_url": settings.FRONTEND_URL, "email": to, **context}
    try:
        html = render_to_string(f"notifications/emails/{template}.html", context)
        send_mail(subject, strip_tags(html), settings.DEFAULT_FROM_EMAIL, [to], html_message=html)
    except Exception:
        logger.exception("Failed to send %s email to %s", template, to)
        return False
    logger.info("%s email sent to %s", template, to)
    return True


def send_welcome_email(user) -> bool:
    return _send(
        "Welcome to PlacePrep - Your Success Journey Begins",
        "welcome",
        {"full_name": user.full_name},
        user.email,
    )


def send_verification_email(user, code: str, ttl_minutes: int = 10) -> bool:
    return _send(
        "Verify your PlacePrep email",
        "verification",
        {"full_name": user.full_name, "code": code, "ttl_minutes": ttl_minutes},
        user.email,
    )


def send_password_reset_email(user, reset_link: str) -> bool:
    return _send(
        "Reset Your PlacePrep Password",
        "password_reset",
        {"full_name": user.full_name, "reset_link": reset_link},
        user.email,
    )


def send_contest_reminder_email(user, contest) -> bool:
    return _send(
        f"Reminder: {contest.title} starts in 1 hour!",
        "contest_reminder",
        {"full_name": user.full_name, "contest": contest},
        user.email,
    )


def send_result_email(user, result: dict) -> bool:
    """
    result keys: contest_id, contest_title, score, total, percentage,
    completed_at, time_taken, rank, auto_submitted
    """
    percentage = result.get("percentage") or 0
    if percentage >= 80:
        band = "excellent"
    elif percentage >= 60:
        band = "good"
    else:
        band = "practice"
    return _send(
        f"Your Results: {result['contest_title']}",
        "result",
        {"full_name": user.full_name, "result": result, "band": band},
        user.email,
    )
