# exams/services/importer.py
"""
Question bank import from JSON payloads, .xlsx/.csv spreadsheets and .json files.

Every row is validated before anything is written; the first invalid row aborts
the whole import.

Spreadsheet columns (header names are matched loosely, e.g. "Correct Answer",
"correctAns" and "correct_ans" are the same column):
  category, subcategory, level, question, correct_ans, explanation?, visibility?
plus either an `options` column holding a JSON object/list, or one column per
option: option_a / option_b / ... (also "A", "B", ..., "Option A").
"""
from __future__ import annotations

import json
import os
import re
import zipfile

import pandas as pd
from django.db import transaction

from common.enums import Level
from ..models import Question

REQUIRED_FIELDS = ("category", "subcategory", "level", "question", "options", "correct_ans")

COLUMN_ALIASES = {
    "category": "category",
    "subcategory": "subcategory",
    "subcat": "subcategory",
    "level": "level",
    "difficulty": "level",
    "question": "question",
    "questiontext": "question",
    "options": "options",
    "correctans": "correct_ans",
    "correctanswer": "correct_ans",
    "correctoption": "correct_ans",
    "answer": "correct_ans",
    "explanation": "explanation",
    "visibility": "visibility",
    "visible": "visibility",
}
OPTION_COL_RE = re.compile(r"^(?:option)?([a-h])$")


class ImportRowError(ValueError):
    def __init__(self, row: int, message: str):
        self.row = row
        super().__init__(f"Row {row}: {message}")


def _compact(name) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _as_bool(value, default=True) -> bool:
    text = _cell(value).lower()
    if text == "":
        return default
    return text not in ("0", "false", "no", "n", "hidden")


def _parse_options(value) -> dict:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return {}
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    if isinstance(value, (list, tuple)):
        return {chr(ord("A") + i): _cell(v) for i, v in enumerate(value) if _cell(v)}
    if isinstance(value, dict):
        return {str(k).strip(): _cell(v) for k, v in value.items() if _cell(v)}
    return {}


def normalize_row(raw: dict, row: int) -> dict:
    """One question payload from a loosely-keyed mapping; raises ImportRowError."""
    data = {}
    letter_options = {}
    for key, value in raw.items():
        compact = _compact(key)
        if compact in COLUMN_ALIASES:
            data[COLUMN_ALIASES[compact]] = value
            continue
        m = OPTION_COL_RE.match(compact)
        if m and _cell(value):
            letter_options[m.group(1).upper()] = _cell(value)

    options = _parse_options(data.get("options")) if "options" in data else {}
    if not options:
        options = dict(sorted(letter_options.items()))

    out = {
        "category": _cell(data.get("category")),
        "subcategory": _cell(data.get("subcategory")),
        "level": _cell(data.get("level")).lower(),
        "question": _cell(data.get("question")),
        "options": options,
        "correct_ans": _cell(data.get("correct_ans")),
        "explanation": _cell(data.get("explanation")),
        "visibility": _as_bool(data.get("visibility")),
    }

    missing = [f for f in REQUIRED_FIELDS if not out[f]]
    if missing:
        raise ImportRowError(row, f"missing required field(s): {', '.join(missing)}")
    if out["level"] not in Level.values:
        raise ImportRowError(row, f"level must be one of {', '.join(Level.values)}")
    if len(options) < 2:
        raise ImportRowError(row, "at least two options are required")
    if out["correct_ans"] not in options:
        # tolerate "a" for "A"
        upper = out["correct_ans"].upper()
        if upper not in options:
            raise ImportRowError(row, "correct_ans must be one of the option keys")
        out["correct_ans"] = upper
    return out


def rows_from_dataframe(df: pd.DataFrame) -> list[dict]:
    df = df.fillna("")
    return [dict(r) for _, r in df.iterrows()]


def read_rows(fileobj, filename: str, sheet=0) -> list[dict]:
    """
    Raw row mappings from an uploaded/opened file; ValueError on unreadable input.
    `sheet` is a worksheet name or index; digit strings ("0") are indexes.
    """
    ext = os.path.splitext(filename or "")[1].lower()
    if ext in (".xlsx", ".xlsm"):
        if isinstance(sheet, str):
            sheet = int(sheet) if sheet.strip().isdigit() else (sheet or 0)
        try:
            df = pd.read_excel(fileobj, sheet_name=sheet, engine="openpyxl", dtype=object)
        except zipfile.BadZipFile as e:
            raise ValueError(f"not a valid Excel workbook ({e})") from e
        return rows_from_dataframe(df)
    if ext == ".csv":
        return rows_from_dataframe(pd.read_csv(fileobj, dtype=object))
    if ext == ".json":
        raw = fileobj.read()
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        payload = json.loads(raw)
        if isinstance(payload, dict):
            payload = payload.get("questions", [])
        if not isinstance(payload, list):
            raise ValueError("JSON import expects a list of questions")
        return payload
    raise ValueError(f"Unsupported file type '{ext or filename}'. Use .xlsx, .csv or .json")


def validate_rows(rows) -> list[dict]:
    """Rows are numbered from 1 as the user sees them (header excluded)."""
    if not rows:
        raise ImportRowError(0, "no rows to import")
    return [normalize_row(r if isinstance(r, dict) else {}, i) for i, r in enumerate(rows, start=1)]


def import_questions(rows, created_by=None) -> list[Question]:
    cleaned = validate_rows(rows)
    with transaction.atomic():
        return Question.objects.bulk_create([Question(created_by=created_by, **row) for row in cleaned])
