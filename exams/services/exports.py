# exams/services/exports.py
from __future__ import annotations

import io
import re

import pandas as pd
from django.utils import timezone

from ..models import StudentActivity, TestSeries
from .leaderboard import build_leaderboard
from .scoring import is_attempted, is_correct, latest_answers

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_NAME_MAX = 31
SHEET_BAD_CHARS = re.compile(r"[\[\]\:\*\?\/\\]")


def _local(dt):
    if dt is None:
        return ""
    return timezone.localtime(dt).strftime("%Y-%m-%d %H:%M:%S")


def export_filename(test_series: TestSeries, ext: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "_", test_series.title).strip("_") or "contest"
    return f"{slug}_results.{ext}"


def summary_frame(board: list[dict]) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Rank": e["rank"],
            "Name": e["full_name"],
            "Email": e["email"],
            "Correct": e["correct"],
            "Attempted": e["attempted"],
            "Total Questions": e["total_questions"],
            "Percentage": e["percentage"],
            "Accuracy": e["accuracy"],
            "Time Taken (min)": e["time_taken"],
            "Submitted At": _local(e["submitted_at"]),
            "Violations": e["violations"],
            "Auto Submitted": "Yes" if e["auto_submitted"] else "No",
        }
        for e in board
    ], columns=[
        "Rank", "Name", "Email", "Correct", "Attempted", "Total Questions", "Percentage",
        "Accuracy", "Time Taken (min)", "Submitted At", "Violations", "Auto Submitted",
    ])


def leaderboard_csv(test_series: TestSeries) -> str:
    return summary_frame(build_leaderboard(test_series)).to_csv(index=False)


def _sheet_name(base: str, used: set) -> str:
    name = SHEET_BAD_CHARS.sub("_", base).strip() or "Participant"
    name = name[:SHEET_NAME_MAX]
    candidate, i = name, 1
    while candidate.lower() in used:
        i += 1
        suffix = f" ({i})"
        candidate = name[: SHEET_NAME_MAX - len(suffix)] + suffix
    used.add(candidate.lower())
    return candidate


def participant_answers(test_series: TestSeries, user_id, questions=None) -> list[dict]:
    """Latest answer per contest question for one participant."""
    questions = questions if questions is not None else list(test_series.questions.all().order_by("created_at"))
    latest = latest_answers(StudentActivity.objects.filter(test_series=test_series, user_id=user_id))
    rows = []
    for n, q in enumerate(questions, start=1):
        selected = latest.get(str(q.id))
        rows.append({
            "no": n,
            "question_id": q.id,
            "question": q.question,
            "options": q.options,
            "user_answer": selected if is_attempted(selected) else None,
            "correct_answer": q.correct_ans,
            "is_correct": is_correct(selected, q.correct_ans),
            "is_attempted": is_attempted(selected),
            "explanation": q.explanation,
        })
    return rows


def results_workbook(test_series: TestSeries) -> bytes:
    """Summary sheet, Questions sheet, then one sheet per participant."""
    board = build_leaderboard(test_series)
    questions = list(test_series.questions.all().order_by("created_at"))

    questions_df = pd.DataFrame([
        {
            "No": n,
            "Question": q.question,
            "Category": q.category,
            "Subcategory": q.subcategory,
            "Level": q.level,
            "Options": "; ".join(f"{k}: {v}" for k, v in (q.options or {}).items()),
            "Correct Answer": q.correct_ans,
            "Explanation": q.explanation,
        }
        for n, q in enumerate(questions, start=1)
    ])

    buf = io.BytesIO()
    used = {"summary", "questions"}
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        summary_frame(board).to_excel(writer, sheet_name="Summary", index=False)
        questions_df.to_excel(writer, sheet_name="Questions", index=False)
        for e in board:
            rows = participant_answers(test_series, e["user_id"], questions)
            pd.DataFrame([
                {
                    "No": r["no"],
                    "Question": r["question"],
                    "Your Answer": r["user_answer"] or "Not attempted",
                    "Correct Answer": r["correct_answer"],
                    "Result": "Correct" if r["is_correct"] else ("Wrong" if r["is_attempted"] else "Skipped"),
                }
                for r in rows
            ]).to_excel(
                writer,
                sheet_name=_sheet_name(f"{e['rank']}. {e['full_name'] or e['email']}", used),
                index=False,
            )
    return buf.getvalue()
