# exams/services/leaderboard.py
from __future__ import annotations

from datetime import datetime

from ..models import Participation, StudentActivity, TestSeries
from .scoring import is_attempted, is_correct, latest_answers, round_half_up


def _span_minutes(start, end):
    if not isinstance(start, datetime) or not isinstance(end, datetime):
        return None
    if end < start:
        return None
    return (end - start).total_seconds() / 60


def time_taken_minutes(participation, contest) -> int:
    """
    First usable pair wins:
    participation start→end, participation start→submitted, contest start→submitted,
    contest start→participation end. 0 when none is usable.
    """
    p_start = getattr(participation, "start_time", None)
    p_end = getattr(participation, "end_time", None)
    p_sub = getattr(participation, "submitted_at", None)
    c_start = getattr(contest, "start_time", None)

    for start, end in ((p_start, p_end), (p_start, p_sub), (c_start, p_sub), (c_start, p_end)):
        minutes = _span_minutes(start, end)
        if minutes is not None:
            return round_half_up(minutes)
    return 0


def rank_entries(entries: list[dict]) -> list[dict]:
    """
    correct desc, then submitted_at asc; entries without submitted_at sort after
    timestamped ties and keep their relative order. Rank = 1-based position.
    """
    ordered = sorted(
        entries,
        key=lambda e: (
            -e["correct"],
            e.get("submitted_at") is None,
            e.get("submitted_at") or datetime.min,
        ),
    )
    for pos, e in enumerate(ordered, start=1):
        e["rank"] = pos
    return ordered


def _entry(user, correct, attempted, total, participation, contest) -> dict:
    return {
        "user_id": user.id,
        "full_name": user.full_name,
        "email": user.email,
        "correct": correct,
        "attempted": attempted,
        "total_questions": total,
        "percentage": round_half_up(correct * 100 / total, 2) if total else 0,
        "accuracy": round_half_up(correct * 100 / attempted, 2) if attempted else 0,
        "time_taken": time_taken_minutes(participation, contest) if participation else 0,
        "submitted_at": getattr(participation, "submitted_at", None),
        "violations": getattr(participation, "violations", 0),
        "auto_submitted": getattr(participation, "auto_submitted", False),
    }


def build_leaderboard(test_series: TestSeries) -> list[dict]:
    """
    Ranked entries for everyone who joined or answered in the contest.

    Each user is scored on their latest answer per question, counting only the
    contest's own questions.
    """
    questions = {str(q.id): q for q in test_series.questions.all()}
    total = len(questions)

    activities = (
        StudentActivity.objects
        .filter(test_series=test_series, question_id__in=list(questions))
        .select_related("user")
    )
    rows_by_user = {}
    users = {}
    for a in activities:
        rows_by_user.setdefault(a.user_id, []).append(a)
        users[a.user_id] = a.user

    participations = {}
    for p in (Participation.objects
              .filter(test_series=test_series)
              .select_related("user")
              .order_by("start_time")):
        participations[p.user_id] = p   # latest start wins
        users.setdefault(p.user_id, p.user)

    entries = []
    for user_id in sorted(users):
        answers = latest_answers(rows_by_user.get(user_id, []))
        attempted = sum(1 for sel in answers.values() if is_attempted(sel))
        correct = sum(
            1 for qid, sel in answers.items() if is_correct(sel, questions[qid].correct_ans)
        )
        entries.append(_entry(users[user_id], correct, attempted, total,
                              participations.get(user_id), test_series))
    return rank_entries(entries)


def rank_of(test_series: TestSeries, user_id) -> int | None:
    for e in build_leaderboard(test_series):
        if e["user_id"] == user_id:
            return e["rank"]
    return None


def contest_stats(test_series: TestSeries, board: list[dict] | None = None) -> dict:
    board = build_leaderboard(test_series) if board is None else board
    submitted = [e for e in board if e["submitted_at"] is not None]
    pcts = [e["percentage"] for e in board]
    return {
        "contest_id": test_series.id,
        "title": test_series.title,
        "total_questions": test_series.questions.count(),
        "participants": len(board),
        "submitted": len(submitted),
        "auto_submitted": sum(1 for e in board if e["auto_submitted"]),
        "average_percentage": round_half_up(sum(pcts) / len(pcts), 2) if pcts else 0,
        "highest_percentage": max(pcts) if pcts else 0,
        "lowest_percentage": min(pcts) if pcts else 0,
    }


def question_analysis(test_series: TestSeries) -> list[dict]:
    """Per-question correct/attempted rates over each participant's latest answer."""
    questions = list(test_series.questions.all().order_by("created_at"))
    qids = [q.id for q in questions]
    by_user = {}
    for a in StudentActivity.objects.filter(test_series=test_series, question_id__in=qids):
        by_user.setdefault(a.user_id, []).append(a)
    latest = [latest_answers(rows) for rows in by_user.values()]
    participants = Participation.objects.filter(test_series=test_series).order_by().values("user_id").distinct().count()

    out = []
    for q in questions:
        picks = [ans.get(str(q.id)) for ans in latest]
        attempted = sum(1 for p in picks if is_attempted(p))
        correct = sum(1 for p in picks if is_correct(p, q.correct_ans))
        distribution = {}
        for p in picks:
            if is_attempted(p):
                distribution[str(p)] = distribution.get(str(p), 0) + 1
        out.append({
            "question_id": q.id,
            "question": q.question,
            "category": q.category,
            "level": q.level,
            "correct_ans": q.correct_ans,
            "attempted": attempted,
            "correct": correct,
            "participants": participants,
            "attempt_rate": round_half_up(attempted * 100 / participants, 2) if participants else 0,
            "correct_rate": round_half_up(correct * 100 / attempted, 2) if attempted else 0,
            "option_distribution": distribution,
        })
    return out
