# exams/services/contests.py
from __future__ import annotations

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from ..models import Question, TestSeries

logger = logging.getLogger(__name__)


def hide_questions(question_ids) -> int:
    """Questions attached to a contest leave the practice pool until it ends."""
    return Question.objects.filter(pk__in=list(question_ids)).update(visibility=False)


def release_questions(question_ids) -> int:
    """Make questions visible again unless another unfinished contest still uses them."""
    now = timezone.now()
    busy = Question.objects.filter(pk__in=list(question_ids), test_series__end_time__gt=now).values("pk")
    return (
        Question.objects
        .filter(pk__in=list(question_ids), visibility=False)
        .exclude(pk__in=busy)
        .update(visibility=True)
    )


def after_create(contest: TestSeries) -> TestSeries:
    if contest.requires_code and not contest.contest_code:
        contest.ensure_code()
        contest.save(update_fields=["contest_code", "updated_at"])
    hide_questions(contest.questions.values_list("pk", flat=True))
    logger.info("Contest %s created with %d question(s)", contest.pk, contest.questions.count())
    return contest


def ensure_editable(contest: TestSeries):
    if contest.has_started:
        raise ValidationError("Cannot update a contest after it has started.")


def sync_question_visibility(contest: TestSeries, before_ids: set) -> None:
    after_ids = set(contest.questions.values_list("pk", flat=True))
    hide_questions(after_ids)
    removed = before_ids - after_ids
    if removed:
        release_questions(removed)


def delete_contests(contests) -> int:
    """Deletes contests and hands their questions back to the practice pool."""
    contests = list(contests)
    question_ids = set(
        Question.objects.filter(test_series__in=contests).values_list("pk", flat=True)
    )
    with transaction.atomic():
        for c in contests:
            c.delete()
        release_questions(question_ids)
    logger.info("Deleted %d contest(s)", len(contests))
    return len(contests)


def extend_contest(contest: TestSeries, end_time=None, minutes=None) -> TestSeries:
    new_end = end_time or (contest.end_time + timedelta(minutes=minutes))
    if new_end <= contest.start_time:
        raise ValidationError("end_time must be after start_time.")
    if new_end <= contest.end_time:
        raise ValidationError("New end time must be later than the current end time.")

    contest.end_time = new_end
    fields = ["end_time", "updated_at"]
    if new_end > timezone.now() and contest.ended_notified_at:
        contest.ended_notified_at = None
        fields.append("ended_notified_at")
    contest.save(update_fields=fields)
    # reopened contests take their questions out of the pool again
    if new_end > timezone.now():
        hide_questions(contest.questions.values_list("pk", flat=True))
    return contest
