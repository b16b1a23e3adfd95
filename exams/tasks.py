# exams/tasks.py
from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from .models import Participation, Question, StudentActivity, TestSeries
from .services.leaderboard import build_leaderboard
from .services.scoring import latest_answers, score_answers
from .services.submission import claim_participation, result_payload

logger = logging.getLogger(__name__)

AUTO_SUBMITTED = "Auto-submitted"
REMINDER_LEAD = timedelta(hours=1)


def _default_dispatcher():
    from notifications.services import get_dispatcher
    return get_dispatcher()


def _reconstruct_answers(participation, questions):
    """Latest activity per question; a question never answered maps to ''."""
    rows = StudentActivity.objects.filter(
        user_id=participation.user_id, test_series_id=participation.test_series_id,
    )
    latest = latest_answers(rows)
    return [
        {"question_id": q.id, "selected_option": latest.get(str(q.id)) or ""}
        for q in questions
    ]


def _auto_submit_participation(participation, contest, questions, now) -> dict | None:
    """Closes one participation; its result payload, or None when the user's own submit got there first."""
    scored = score_answers(questions, _reconstruct_answers(participation, questions))
    if not claim_participation(participation.pk, now, auto_submitted=True):
        return None

    participation.end_time = participation.submitted_at = now
    participation.auto_submitted = True
    logger.info(
        "Auto-submitted participation %s (user %s, contest %s): %s/%s",
        participation.pk, participation.user_id, contest.pk, scored["correct"], scored["total"],
    )
    return result_payload(contest, participation, scored, time_taken=AUTO_SUBMITTED)


def _send_results(contest, closed, dispatcher) -> None:
    """One leaderboard per contest; a failed notification does not stop the rest."""
    try:
        ranks = {e["user_id"]: e["rank"] for e in build_leaderboard(contest)}
    except Exception:
        logger.exception("Could not rank auto-submitted results of contest %s", contest.pk)
        ranks = {}
    for participation, result in closed:
        result["rank"] = ranks.get(participation.user_id)
        try:
            dispatcher.send_result(participation.user, result)
        except Exception:
            logger.exception(
                "Result notification failed for participation %s in contest %s", participation.pk, contest.pk
            )


def sweep_expired_contests(now=None, dispatcher=None) -> dict:
    """
    Closes every open participation of every contest whose end_time has passed.
    `now` is fixed for the whole sweep. A participation that fails before it is
    closed is logged and skipped; it stays open and is picked up again by the
    next sweep.
    """
    now = now or timezone.now()
    dispatcher = dispatcher or _default_dispatcher()
    closed_total = failed = 0

    for contest in TestSeries.objects.filter(end_time__lte=now).order_by("end_time"):
        open_qs = (
            Participation.objects
            .filter(test_series=contest, submitted_at__isnull=True, end_time__isnull=True)
            .select_related("user")
        )
        if not open_qs.exists():
            continue
        questions = list(contest.questions.all())
        closed = []
        for participation in open_qs:
            try:
                result = _auto_submit_participation(participation, contest, questions, now)
            except Exception:
                failed += 1
                logger.exception(
                    "Auto-submit failed for participation %s in contest %s", participation.pk, contest.pk
                )
                continue
            if result is not None:
                closed.append((participation, result))

        if closed:
            closed_total += len(closed)
            _send_results(contest, closed, dispatcher)

    if closed_total or failed:
        logger.info("Auto-submit sweep at %s: %d closed, %d failed", now.isoformat(), closed_total, failed)
    return {"closed": closed_total, "failed": failed}


def restore_question_visibility(now=None) -> int:
    """Questions of ended contests become visible again unless a running or upcoming contest still uses them."""
    now = now or timezone.now()
    still_hidden = Question.objects.filter(test_series__end_time__gt=now).values("pk")
    return (
        Question.objects
        .filter(test_series__end_time__lte=now, visibility=False)
        .exclude(pk__in=still_hidden)
        .update(visibility=True)
    )


def _claim_flag(contest, field, now) -> bool:
    return TestSeries.objects.filter(pk=contest.pk, **{f"{field}__isnull": True}).update(**{field: now}) == 1


def announce_lifecycle(now=None, dispatcher=None) -> dict:
    """Started/ended broadcasts and one-hour reminders, each at most once per contest."""
    now = now or timezone.now()
    dispatcher = dispatcher or _default_dispatcher()
    counts = {"started": 0, "ended": 0, "reminded": 0}

    for contest in TestSeries.objects.filter(
        reminder_sent_at__isnull=True, start_time__gt=now, start_time__lte=now + REMINDER_LEAD,
    ):
        if _claim_flag(contest, "reminder_sent_at", now):
            dispatcher.notify_contest_reminder(contest)
            counts["reminded"] += 1

    for contest in TestSeries.objects.filter(
        started_notified_at__isnull=True, start_time__lte=now, end_time__gt=now,
    ):
        if _claim_flag(contest, "started_notified_at", now):
            dispatcher.notify_contest_started(contest)
            counts["started"] += 1

    for contest in TestSeries.objects.filter(ended_notified_at__isnull=True, end_time__lte=now):
        if _claim_flag(contest, "ended_notified_at", now):
            dispatcher.notify_contest_ended(contest)
            counts["ended"] += 1

    return counts


@shared_task(bind=True, ignore_result=True)
def auto_submit_expired_contests(self):
    """
    Periodic task (every AUTO_SUBMIT_INTERVAL_SECONDS):
      1) auto-submit open participations of ended contests
      2) give ended contests' questions back to the practice pool
    """
    now = timezone.now()
    sweep_expired_contests(now)
    restored = restore_question_visibility(now)
    if restored:
        logger.info("Restored visibility of %d question(s)", restored)


@shared_task(bind=True, ignore_result=True)
def announce_contest_lifecycle(self):
    announce_lifecycle()
