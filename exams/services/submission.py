# exams/services/submission.py
"""
Contest participation: join, live answer saving, final submit and the
proctoring violation counter.

A participation is closed exactly once. Both the user's submit and the
auto-submit sweep close it through `claim_participation`, a conditional UPDATE
on `submitted_at IS NULL AND end_time IS NULL`; only the caller whose UPDATE
matched a row sends the result notification.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from ..models import Participation, StudentActivity, TestSeries, ViolationEvent
from .leaderboard import rank_of, time_taken_minutes
from .scoring import answer_map, as_selected, latest_answers, score_answers

logger = logging.getLogger(__name__)


def claim_participation(participation_id, now, auto_submitted: bool = False) -> bool:
    """True iff this call closed the participation."""
    updated = (
        Participation.objects
        .filter(pk=participation_id, submitted_at__isnull=True, end_time__isnull=True)
        .update(end_time=now, submitted_at=now, auto_submitted=auto_submitted)
    )
    return updated == 1


def live_participation(user, test_series) -> Participation | None:
    return (
        Participation.objects
        .filter(user=user, test_series=test_series, end_time__isnull=True, submitted_at__isnull=True)
        .first()
    )


# ----------------------------
# Join
# ----------------------------

def join_contest(user, test_series: TestSeries, code: str | None = None) -> tuple[Participation, bool]:
    """Returns (live participation, created)."""
    if test_series.has_ended:
        raise ValidationError("Contest has ended.")
    if test_series.requires_code and (code or "").strip().upper() != (test_series.contest_code or "").upper():
        raise ValidationError("Invalid contest code.")

    existing = live_participation(user, test_series)
    if existing:
        return existing, False
    if Participation.objects.filter(user=user, test_series=test_series).exists():
        raise ValidationError("You have already submitted this contest.")

    try:
        with transaction.atomic():
            p = Participation.objects.create(
                user=user, test_series=test_series, contest=True, start_time=timezone.now(),
            )
    except IntegrityError:
        # concurrent join won the partial unique constraint
        p = live_participation(user, test_series)
        if p is None:
            raise
        return p, False
    logger.info("User %s joined contest %s", user.pk, test_series.pk)
    return p, True


# ----------------------------
# Answers
# ----------------------------

def save_answer(user, test_series: TestSeries, question_id, selected_option) -> StudentActivity:
    """Appends one activity row for a live participation while the contest is running."""
    if not test_series.has_started:
        raise ValidationError("Contest has not started yet.")
    if test_series.has_ended:
        raise ValidationError("Contest has ended.")
    if live_participation(user, test_series) is None:
        raise ValidationError("Join the contest before answering.")
    if not test_series.questions.filter(pk=question_id).exists():
        raise ValidationError("Question does not belong to this contest.")

    return StudentActivity.objects.create(
        user=user,
        question_id=question_id,
        test_series=test_series,
        selected_answer=as_selected(selected_option),
    )


def activity_rows(user, answers, questions, **scope):
    now = timezone.now()
    allowed = {str(q.id) for q in questions}
    return [
        StudentActivity(
            user=user, question_id=qid, time=now,
            selected_answer=as_selected(sel),
            **scope,
        )
        for qid, sel in answer_map(answers).items()
        if qid in allowed
    ]


def final_answers(user, test_series: TestSeries, answers) -> list[dict]:
    """
    Answers saved live during the contest, overridden by the submitted ones.
    Same latest-per-question view the leaderboard scores.
    """
    merged = latest_answers(StudentActivity.objects.filter(user=user, test_series=test_series))
    merged.update({qid: as_selected(sel) for qid, sel in answer_map(answers).items()})
    return [{"question_id": qid, "selected_option": sel} for qid, sel in merged.items()]


def result_payload(test_series: TestSeries, participation: Participation, scored: dict, **extra) -> dict:
    return {
        "contest_id": test_series.id,
        "contest_title": test_series.title,
        "score": scored["correct"],
        "total": scored["total"],
        "attempted": scored["attempted"],
        "percentage": scored["percentage"],
        "completed_at": participation.submitted_at,
        "time_taken": time_taken_minutes(participation, test_series),
        "rank": None,
        "auto_submitted": participation.auto_submitted,
        **extra,
    }


def submit_contest(user, test_series: TestSeries, answers, dispatcher=None) -> dict:
    """
    Closes the caller's participation, appends one activity row per answer and
    scores the latest answer per question, live-saved ones included. Raises ValidationError when the contest has not started or the
    participation is already closed.
    """
    if not test_series.has_started:
        raise ValidationError("Contest has not started yet.")
    if not answers:
        raise ValidationError("Answers are required.")

    participation = (
        Participation.objects.filter(user=user, test_series=test_series).order_by("-start_time").first()
    )
    if participation is None:
        if test_series.requires_code:
            raise ValidationError("Join the contest before submitting.")
        participation, _ = join_contest(user, test_series)
    if not participation.is_live:
        raise ValidationError("Contest already submitted.")

    questions = list(test_series.questions.all())
    now = timezone.now()

    with transaction.atomic():
        if not claim_participation(participation.pk, now):
            raise ValidationError("Contest already submitted.")
        scored = score_answers(questions, final_answers(user, test_series, answers))
        StudentActivity.objects.bulk_create(
            activity_rows(user, answers, questions, test_series=test_series)
        )

    participation.refresh_from_db()
    result = result_payload(test_series, participation, scored)
    result["rank"] = rank_of(test_series, user.pk)
    logger.info(
        "User %s submitted contest %s: %s/%s", user.pk, test_series.pk, scored["correct"], scored["total"]
    )

    if dispatcher is not None:
        dispatcher.send_result(user, result)
    return {**result, "per_question": scored["per_question"]}


# ----------------------------
# Proctoring
# ----------------------------

def record_violation(participation: Participation, violation_type: str) -> dict:
    """
    +1 per call, no dedup by type. The participation stays open; the client is
    expected to submit when should_auto_submit is true.
    """
    Participation.objects.filter(pk=participation.pk).update(violations=F("violations") + 1)
    ViolationEvent.objects.create(participation=participation, type=violation_type)
    participation.refresh_from_db(fields=["violations"])
    threshold = settings.VIOLATION_AUTO_SUBMIT_THRESHOLD
    logger.info(
        "Violation %s on participation %s (%s/%s)",
        violation_type, participation.pk, participation.violations, threshold,
    )
    return {
        "violations": participation.violations,
        "should_auto_submit": participation.violations >= threshold,
    }


def violation_for_user(user, test_series: TestSeries, violation_type: str) -> dict:
    participation = live_participation(user, test_series)
    if participation is None:
        raise ValidationError("No active participation for this contest.")
    return record_violation(participation, violation_type)
