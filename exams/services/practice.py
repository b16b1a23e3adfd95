# exams/services/practice.py
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from ..models import FreePractice, Participation, Question, StudentActivity
from .scoring import is_attempted, is_correct, latest_answers, percentage, round_half_up, score_answers
from .submission import activity_rows

logger = logging.getLogger(__name__)

RECENT_TESTS = 5


def pick_practice_questions(category: str, subcategory: str, level: str, num_questions: int) -> list[Question]:
    """`num_questions` visible questions in one random order; 400 when the pool is too small."""
    questions = list(
        Question.objects
        .filter(visibility=True, category=category, subcategory=subcategory, level=level)
        .order_by("?")[:num_questions]
    )
    if len(questions) < num_questions:
        raise ValidationError("Not enough questions available for the selected criteria.")
    return questions


def create_free_practice(user, *, category, subcategory, level, num_questions, title=None) -> FreePractice:
    questions = pick_practice_questions(category, subcategory, level, num_questions)
    with transaction.atomic():
        practice = FreePractice.objects.create(
            title=title or f"{category} · {subcategory} ({level})",
            category=category,
            subcategory=subcategory,
            level=level,
            created_by=user,
            start_time=timezone.now(),
        )
        practice.questions.set(questions)
        Participation.objects.create(
            user=user, free_practice=practice, practice_test=True, start_time=practice.start_time,
        )
    return practice


def submit_free_practice(user, practice: FreePractice, answers) -> dict:
    if practice.created_by_id != user.pk:
        raise PermissionDenied("Not authorized.")
    if practice.is_submitted:
        raise ValidationError("Practice already submitted.")

    questions = list(practice.questions.all())
    scored = score_answers(questions, answers)
    now = timezone.now()

    with transaction.atomic():
        closed = FreePractice.objects.filter(pk=practice.pk, end_time__isnull=True).update(end_time=now)
        if not closed:
            raise ValidationError("Practice already submitted.")
        (Participation.objects
         .filter(free_practice=practice, user=user, end_time__isnull=True)
         .update(end_time=now, submitted_at=now))
        StudentActivity.objects.bulk_create(
            activity_rows(user, answers, questions, free_practice=practice)
        )

    practice.end_time = now
    logger.info("User %s submitted practice %s: %s/%s", user.pk, practice.pk, scored["correct"], scored["total"])
    return {
        "practice_id": practice.id,
        "title": practice.title,
        "score": scored["correct"],
        "attempted": scored["attempted"],
        "total": scored["total"],
        "percentage": scored["percentage"],
        "submitted_at": now,
        "per_question": scored["per_question"],
    }


def _practice_answers(practice: FreePractice) -> dict:
    return latest_answers(
        StudentActivity.objects.filter(free_practice=practice, user_id=practice.created_by_id)
    )


def practice_results(practice: FreePractice) -> dict:
    answers = _practice_answers(practice)
    questions = list(practice.questions.all().order_by("created_at"))
    rows = []
    correct = attempted = 0
    for q in questions:
        selected = answers.get(str(q.id))
        ok = is_correct(selected, q.correct_ans)
        tried = is_attempted(selected)
        correct += ok
        attempted += tried
        rows.append({
            "question_id": q.id,
            "question": q.question,
            "options": q.options,
            "user_answer": selected,
            "correct_answer": q.correct_ans,
            "explanation": q.explanation,
            "is_correct": ok,
            "is_attempted": tried,
        })
    return {
        "practice_id": practice.id,
        "title": practice.title,
        "category": practice.category,
        "subcategory": practice.subcategory,
        "level": practice.level,
        "start_time": practice.start_time,
        "end_time": practice.end_time,
        "score": correct,
        "attempted": attempted,
        "total": len(questions),
        "percentage": percentage(correct, len(questions)),
        "questions": rows,
    }


def practice_stats(user) -> dict:
    """Average over submitted practices that have questions; None when there is none."""
    practices = list(FreePractice.objects.filter(created_by=user).prefetch_related("questions"))
    scores = []
    for p in practices:
        if not p.is_submitted:
            continue
        questions = list(p.questions.all())
        answers = _practice_answers(p)
        correct = sum(1 for q in questions if is_correct(answers.get(str(q.id)), q.correct_ans))
        pct = percentage(correct, len(questions), empty=None)
        if pct is not None:
            scores.append(pct)
    return {
        "tests_taken": len(practices),
        "submitted": sum(1 for p in practices if p.is_submitted),
        "average_percentage": round_half_up(sum(scores) / len(scores), 2) if scores else None,
        "best_percentage": max(scores) if scores else None,
    }


def dashboard_stats(user) -> dict:
    """Totals plus an average score over the user's latest answer to each question."""
    latest = latest_answers(
        StudentActivity.objects.filter(user=user).only("id", "question_id", "time", "selected_answer")
    )
    correct_by_q = {
        str(pk): ans for pk, ans in Question.objects.filter(pk__in=list(latest)).values_list("id", "correct_ans")
    }
    answered = {qid: sel for qid, sel in latest.items() if is_attempted(sel)}
    correct = sum(1 for qid, sel in answered.items() if is_correct(sel, correct_by_q.get(qid)))
    return {
        "total_tests": FreePractice.objects.filter(created_by=user).count(),
        "total_contests": Participation.objects.filter(user=user, contest=True).count(),
        "average_score": percentage(correct, len(answered)),
        "total_questions": len(answered),
    }


def recent_tests(user):
    return (
        FreePractice.objects
        .filter(created_by=user)
        .prefetch_related("questions")
        .order_by("-start_time")[:RECENT_TESTS]
    )
