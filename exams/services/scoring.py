# exams/services/scoring.py
"""
Answer scoring shared by contest submit, free practice and the auto-submit sweep.

Pure functions: callers pass question objects (anything with `.id` and
`.correct_ans`) and answer dicts `{"question_id": ..., "selected_option": ...}`.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def as_selected(value):
    """Stored form of a chosen option: its text, or None when nothing was picked."""
    return None if value is None else str(value)


def is_attempted(selected) -> bool:
    if selected is None:
        return False
    if str(selected).strip() == "":
        return False
    return selected != "null"


def is_correct(selected, correct_ans) -> bool:
    return is_attempted(selected) and selected == correct_ans


def round_half_up(value, places: int = 0):
    quant = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quant, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


def percentage(correct: int, total: int, empty=0, places: int = 0):
    """correct/total*100 rounded half-up; `empty` when there is nothing to score."""
    if not total:
        return empty
    return round_half_up(Decimal(correct) * 100 / Decimal(total), places)


def answer_map(answers) -> dict[str, object]:
    out = {}
    for a in answers or []:
        qid = a.get("question_id") if isinstance(a, dict) else None
        if qid is None:
            continue
        # a later entry for the same question replaces an earlier one
        out[str(qid)] = a.get("selected_option")
    return out


def score_answers(questions, answers) -> dict:
    """
    Scores `answers` against `questions`.

    Only answers whose question_id belongs to `questions` count; a question with
    no answer is unattempted. Returns attempted/correct/total/percentage and a
    per-question breakdown in `questions` order.
    """
    by_id = answer_map(answers)
    per_question = []
    attempted = correct = 0

    for q in questions:
        selected = by_id.get(str(q.id))
        attempted_q = is_attempted(selected)
        correct_q = is_correct(selected, q.correct_ans)
        attempted += attempted_q
        correct += correct_q
        per_question.append({
            "question_id": q.id,
            "user_answer": selected,
            "correct_answer": q.correct_ans,
            "is_correct": correct_q,
            "is_attempted": attempted_q,
        })

    total = len(per_question)
    return {
        "attempted": attempted,
        "correct": correct,
        "total": total,
        "percentage": percentage(correct, total),
        "per_question": per_question,
    }


def latest_answers(activities) -> dict[str, object]:
    """
    {question_id: selected_answer} keeping the most recent row per question
    (by time, then id). Input order does not matter.
    """
    latest = {}
    for a in activities:
        key = str(a.question_id)
        seen = latest.get(key)
        if seen is None or (a.time, a.id) > (seen.time, seen.id):
            latest[key] = a
    return {k: v.selected_answer for k, v in latest.items()}
