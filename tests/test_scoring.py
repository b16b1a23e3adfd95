from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from exams.services.scoring import (
    answer_map,
    as_selected,
    is_attempted,
    is_correct,
    latest_answers,
    percentage,
    round_half_up,
    score_answers,
)


def q(id, correct):
    return SimpleNamespace(id=id, correct_ans=correct)


class TestAttempted:
    @pytest.mark.parametrize("value", [None, "", "   ", "null"])
    def test_not_attempted(self, value):
        assert is_attempted(value) is False

    @pytest.mark.parametrize("value", ["A", "0", " B "])
    def test_attempted(self, value):
        assert is_attempted(value) is True

    def test_correct_needs_exact_match(self):
        assert is_correct("A", "A")
        assert not is_correct("a", "A")
        assert not is_correct(" A", "A")
        assert not is_correct(None, "A")


class TestRounding:
    def test_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(66.665, 2) == 66.67

    def test_percentage(self):
        assert percentage(1, 3) == 33
        assert percentage(2, 3) == 67
        assert percentage(1, 8) == 13   # 12.5 rounds up
        assert percentage(0, 0) == 0
        assert percentage(0, 0, empty=None) is None

    def test_percentage_stays_in_bounds(self):
        for total in range(1, 13):
            for correct in range(total + 1):
                assert 0 <= percentage(correct, total) <= 100
                assert 0 <= percentage(correct, total, places=2) <= 100

    def test_as_selected(self):
        assert as_selected(1) == "1"
        assert as_selected("B") == "B"
        assert as_selected(None) is None


class TestScoreAnswers:
    def test_mixed_answers(self):
        questions = [q("q1", "A"), q("q2", "B"), q("q3", "C")]
        answers = [
            {"question_id": "q1", "selected_option": "A"},
            {"question_id": "q2", "selected_option": "C"},
            {"question_id": "q3", "selected_option": ""},
        ]
        res = score_answers(questions, answers)
        assert res["attempted"] == 2
        assert res["correct"] == 1
        assert res["total"] == 3
        assert res["percentage"] == 33
        assert [p["is_correct"] for p in res["per_question"]] == [True, False, False]
        assert [p["is_attempted"] for p in res["per_question"]] == [True, True, False]

    def test_unknown_question_ids_are_ignored(self):
        res = score_answers([q("q1", "A")], [{"question_id": "zzz", "selected_option": "A"}])
        assert res["correct"] == 0
        assert res["attempted"] == 0

    def test_no_questions(self):
        res = score_answers([], [{"question_id": "q1", "selected_option": "A"}])
        assert res["total"] == 0
        assert res["percentage"] == 0

    def test_later_duplicate_wins(self):
        mapped = answer_map([
            {"question_id": "q1", "selected_option": "A"},
            {"question_id": "q1", "selected_option": "B"},
        ])
        assert mapped == {"q1": "B"}


class TestLatestAnswers:
    def test_latest_by_time_then_id(self):
        t0 = datetime(2024, 1, 1, 10, 0)
        rows = [
            SimpleNamespace(id=3, question_id="q1", time=t0, selected_answer="C"),
            SimpleNamespace(id=1, question_id="q1", time=t0 + timedelta(minutes=1), selected_answer="A"),
            SimpleNamespace(id=2, question_id="q1", time=t0, selected_answer="B"),
            SimpleNamespace(id=4, question_id="q2", time=t0, selected_answer=None),
        ]
        assert latest_answers(rows) == {"q1": "A", "q2": None}
        assert latest_answers(list(reversed(rows))) == {"q1": "A", "q2": None}

    def test_same_time_uses_id(self):
        t0 = datetime(2024, 1, 1, 10, 0)
        rows = [
            SimpleNamespace(id=5, question_id="q1", time=t0, selected_answer="D"),
            SimpleNamespace(id=7, question_id="q1", time=t0, selected_answer="B"),
        ]
        assert latest_answers(rows) == {"q1": "B"}
