from datetime import timedelta

import pytest
from django.utils import timezone

from exams.models import Participation, Question, StudentActivity, TestSeries, ViolationEvent
from notifications.models import Notification
from tests.conftest import make_contest, make_question


def answers_for(questions, pick=lambda q: q.correct_ans):
    return [{"questionId": str(q.id), "selectedOption": pick(q)} for q in questions]


@pytest.mark.django_db
class TestContestAdmin:
    def test_create_hides_questions_and_announces(self, moderator_client, questions, student):
        now = timezone.now()
        resp = moderator_client.post("/api/testseries/", {
            "title": "Mock Placement Test",
            "start_time": (now + timedelta(hours=2)).isoformat(),
            "end_time": (now + timedelta(hours=3)).isoformat(),
            "requires_code": True,
            "question_ids": [str(q.id) for q in questions],
        }, format="json")
        assert resp.status_code == 201, resp.data
        contest = TestSeries.objects.get(pk=resp.data["id"])
        assert contest.contest_code
        assert resp.data["contest_code"] == contest.contest_code
        assert not Question.objects.filter(pk__in=[q.pk for q in questions], visibility=True).exists()
        assert Notification.objects.filter(user=student, type="CONTEST_ANNOUNCED").count() == 1

    def test_create_requires_questions_and_order(self, moderator_client):
        now = timezone.now()
        resp = moderator_client.post("/api/testseries/", {
            "title": "Broken",
            "start_time": (now + timedelta(hours=2)).isoformat(),
            "end_time": (now + timedelta(hours=1)).isoformat(),
            "question_ids": [],
        }, format="json")
        assert resp.status_code == 400

    def test_students_cannot_create(self, student_client, questions):
        now = timezone.now()
        resp = student_client.post("/api/testseries/", {
            "title": "Nope",
            "start_time": (now + timedelta(hours=1)).isoformat(),
            "end_time": (now + timedelta(hours=2)).isoformat(),
            "question_ids": [str(questions[0].id)],
        }, format="json")
        assert resp.status_code == 403

    def test_update_rejected_after_start(self, moderator_client, live_contest):
        resp = moderator_client.patch(f"/api/testseries/{live_contest.id}/", {"title": "Renamed"}, format="json")
        assert resp.status_code == 400

    def test_delete_restores_visibility(self, moderator_client, questions):
        contest = make_contest(questions, start=timezone.now() + timedelta(hours=1),
                               end=timezone.now() + timedelta(hours=2))
        Question.objects.filter(pk__in=[q.pk for q in questions]).update(visibility=False)

        resp = moderator_client.delete(f"/api/testseries/{contest.id}/")
        assert resp.status_code == 204
        assert Question.objects.filter(visibility=True).count() == len(questions)

    def test_extend(self, moderator_client, live_contest):
        old_end = live_contest.end_time
        resp = moderator_client.patch(f"/api/testseries/{live_contest.id}/extend/", {"minutes": 15}, format="json")
        assert resp.status_code == 200
        live_contest.refresh_from_db()
        assert live_contest.end_time == old_end + timedelta(minutes=15)

    def test_code_hidden_from_students(self, student_client, questions):
        contest = make_contest(questions, requires_code=True, contest_code="SECRET42")
        resp = student_client.get(f"/api/testseries/{contest.id}/")
        assert resp.status_code == 200
        assert "contest_code" not in resp.data


@pytest.mark.django_db
class TestJoinAndSubmit:
    def test_join_is_idempotent(self, student_client, live_contest):
        first = student_client.post(f"/api/testseries/{live_contest.id}/join/", {}, format="json")
        second = student_client.post(f"/api/testseries/{live_contest.id}/join/", {}, format="json")
        assert first.status_code == 201
        assert second.status_code == 200
        assert first.data["id"] == second.data["id"]

    def test_join_requires_code(self, student_client, questions):
        contest = make_contest(questions, requires_code=True, contest_code="ABCD1234")
        bad = student_client.post(f"/api/testseries/{contest.id}/join/", {"code": "WRONG"}, format="json")
        assert bad.status_code == 400
        ok = student_client.post("/api/testseries/join-by-code/", {"code": "abcd1234"}, format="json")
        assert ok.status_code == 201

    def test_join_by_unknown_code(self, student_client):
        resp = student_client.post("/api/testseries/join-by-code/", {"code": "NOPE"}, format="json")
        assert resp.status_code == 404

    def test_join_after_end(self, student_client, questions):
        now = timezone.now()
        contest = make_contest(questions, start=now - timedelta(hours=2), end=now - timedelta(hours=1))
        resp = student_client.post(f"/api/testseries/{contest.id}/join/", {}, format="json")
        assert resp.status_code == 400

    def test_questions_hidden_before_start(self, student_client, questions):
        contest = make_contest(questions, start=timezone.now() + timedelta(hours=1),
                               end=timezone.now() + timedelta(hours=2))
        assert student_client.get(f"/api/testseries/{contest.id}/questions/").status_code == 403

    def test_questions_have_no_answer_key(self, student_client, live_contest):
        resp = student_client.get(f"/api/testseries/{live_contest.id}/questions/")
        assert resp.status_code == 200
        assert "correct_ans" not in resp.data["questions"][0]

    def test_submit_scores_and_notifies_once(self, student_client, student, live_contest, questions):
        student_client.post(f"/api/testseries/{live_contest.id}/join/", {}, format="json")
        body = {"answers": answers_for(questions[:3]) + [{"questionId": str(questions[3].id), "selectedOption": "Z"}]}

        resp = student_client.post(f"/api/testseries/{live_contest.id}/submit/", body, format="json")
        assert resp.status_code == 200, resp.data
        assert resp.data["score"] == 3
        assert resp.data["total"] == 4
        assert resp.data["percentage"] == 75
        assert resp.data["rank"] == 1
        assert StudentActivity.objects.filter(user=student, test_series=live_contest).count() == 4

        p = Participation.objects.get(user=student, test_series=live_contest)
        assert p.submitted_at is not None and p.end_time is not None
        assert not p.auto_submitted

        again = student_client.post(f"/api/testseries/{live_contest.id}/submit/", body, format="json")
        assert again.status_code == 400
        assert Notification.objects.filter(user=student, type="RESULT_AVAILABLE").count() == 1

    def test_high_score_notification(self, student_client, student, live_contest, questions):
        resp = student_client.post(
            f"/api/testseries/{live_contest.id}/submit/", {"answers": answers_for(questions)}, format="json",
        )
        assert resp.status_code == 200
        assert resp.data["percentage"] == 100
        assert Notification.objects.filter(user=student, type="HIGH_SCORE").exists()

    def test_submit_before_start(self, student_client, questions):
        contest = make_contest(questions, start=timezone.now() + timedelta(hours=1),
                               end=timezone.now() + timedelta(hours=2))
        resp = student_client.post(f"/api/testseries/{contest.id}/submit/",
                                   {"answers": answers_for(questions)}, format="json")
        assert resp.status_code == 400

    def test_submit_requires_answers(self, student_client, live_contest):
        resp = student_client.post(f"/api/testseries/{live_contest.id}/submit/", {"answers": []}, format="json")
        assert resp.status_code == 400

    def test_rejoin_after_submit(self, student_client, live_contest, questions):
        student_client.post(f"/api/testseries/{live_contest.id}/submit/",
                            {"answers": answers_for(questions)}, format="json")
        resp = student_client.post(f"/api/testseries/{live_contest.id}/join/", {}, format="json")
        assert resp.status_code == 400

    def test_save_answer_then_result(self, student_client, live_contest, questions):
        student_client.post(f"/api/testseries/{live_contest.id}/join/", {}, format="json")
        resp = student_client.post(f"/api/testseries/{live_contest.id}/answer/",
                                   {"questionId": str(questions[0].id), "selectedOption": "A"}, format="json")
        assert resp.status_code == 201

        result = student_client.get(f"/api/testseries/{live_contest.id}/result/")
        assert result.status_code == 200
        assert result.data["result"]["attempted"] == 1
        # answer key stays hidden while the contest is running
        assert "correct_answer" not in result.data["answers"][0]

    def test_submit_counts_live_saved_answers(self, student_client, live_contest, questions):
        url = f"/api/testseries/{live_contest.id}"
        student_client.post(f"{url}/join/", {}, format="json")
        student_client.post(f"{url}/answer/", {"questionId": str(questions[1].id), "selectedOption": "B"},
                            format="json")

        resp = student_client.post(f"{url}/submit/", {"answers": answers_for(questions[:1])}, format="json")
        assert resp.status_code == 200, resp.data
        assert resp.data["score"] == 2
        assert resp.data["attempted"] == 2

        (entry,) = student_client.get(f"{url}/leaderboard/").data["leaderboard"]
        assert (entry["correct"], entry["attempted"]) == (2, 2)

    def test_submitted_answer_overrides_live_saved(self, student_client, live_contest, questions):
        url = f"/api/testseries/{live_contest.id}"
        student_client.post(f"{url}/join/", {}, format="json")
        student_client.post(f"{url}/answer/", {"questionId": str(questions[0].id), "selectedOption": "A"},
                            format="json")

        resp = student_client.post(f"{url}/submit/", {"answers": answers_for(questions[:1], lambda q: "C")},
                                   format="json")
        assert resp.data["score"] == 0
        (entry,) = student_client.get(f"{url}/leaderboard/").data["leaderboard"]
        assert entry["correct"] == 0

    def test_numeric_option_scored_as_text(self, student_client):
        q = make_question(question="1 + 0 = ?", options={"1": "one", "2": "two"}, correct="1")
        contest = make_contest([q])

        resp = student_client.post(f"/api/testseries/{contest.id}/submit/",
                                   {"answers": [{"questionId": str(q.id), "selectedOption": 1}]}, format="json")
        assert resp.status_code == 200, resp.data
        assert resp.data["score"] == 1

        (entry,) = student_client.get(f"/api/testseries/{contest.id}/leaderboard/").data["leaderboard"]
        assert entry["correct"] == 1

    def test_three_question_example(self, student_client):
        qs = [make_question(question=f"Q{c}", correct=c) for c in "ABC"]
        contest = make_contest(qs)
        picks = dict(zip((q.id for q in qs), "ABX"))

        resp = student_client.post(f"/api/testseries/{contest.id}/submit/",
                                   {"answers": answers_for(qs, lambda q: picks[q.id])}, format="json")
        assert (resp.data["score"], resp.data["attempted"], resp.data["percentage"]) == (2, 3, 67)

        (entry,) = student_client.get(f"/api/testseries/{contest.id}/leaderboard/").data["leaderboard"]
        assert (entry["correct"], entry["attempted"]) == (2, 3)
        assert entry["percentage"] == 66.67
        assert entry["accuracy"] == 66.67

    def test_answer_for_foreign_question(self, student_client, live_contest):
        student_client.post(f"/api/testseries/{live_contest.id}/join/", {}, format="json")
        stray = make_question(question="Not part of it")
        resp = student_client.post(f"/api/testseries/{live_contest.id}/answer/",
                                   {"questionId": str(stray.id), "selectedOption": "A"}, format="json")
        assert resp.status_code == 400


@pytest.mark.django_db
class TestViolations:
    def test_counter_and_threshold(self, student_client, student, live_contest):
        student_client.post(f"/api/testseries/{live_contest.id}/join/", {}, format="json")
        url = f"/api/testseries/{live_contest.id}/violation/"

        first = student_client.post(url, {"type": "tab_switch"}, format="json")
        assert first.status_code == 200
        assert first.data == {"violations": 1, "should_auto_submit": False}

        second = student_client.post(url, {"type": "tab_switch"}, format="json")
        assert second.data == {"violations": 2, "should_auto_submit": True}

        p = Participation.objects.get(user=student, test_series=live_contest)
        assert p.is_live
        assert list(ViolationEvent.objects.filter(participation=p).order_by("id").values_list("type", flat=True)) == [
            "tab_switch", "tab_switch",
        ]

    def test_unknown_type_recorded_as_other(self, student_client, student, live_contest):
        student_client.post(f"/api/testseries/{live_contest.id}/join/", {}, format="json")
        student_client.post(f"/api/testseries/{live_contest.id}/violation/", {"type": "weird"}, format="json")
        assert ViolationEvent.objects.get().type == "other"

    def test_requires_live_participation(self, student_client, live_contest):
        resp = student_client.post(f"/api/testseries/{live_contest.id}/violation/", {"type": "copy"}, format="json")
        assert resp.status_code == 400


@pytest.mark.django_db
class TestAnalyticsEndpoints:
    def test_leaderboard_hides_other_emails(self, student_client, other_client, other_student, live_contest, questions):
        other_client.post(f"/api/testseries/{live_contest.id}/submit/",
                          {"answers": answers_for(questions)}, format="json")
        resp = student_client.get(f"/api/testseries/{live_contest.id}/leaderboard/")
        assert resp.status_code == 200
        (entry,) = resp.data["leaderboard"]
        assert entry["user_id"] == other_student.pk
        assert "email" not in entry

    def test_staff_exports(self, moderator_client, other_client, live_contest, questions):
        other_client.post(f"/api/testseries/{live_contest.id}/submit/",
                          {"answers": answers_for(questions)}, format="json")

        csv_resp = moderator_client.get(f"/api/testseries/{live_contest.id}/export/")
        assert csv_resp.status_code == 200
        assert csv_resp["Content-Type"].startswith("text/csv")
        assert b"Rank,Name,Email" in csv_resp.content

        xlsx = moderator_client.post(f"/api/testseries/{live_contest.id}/download-results/")
        assert xlsx.status_code == 200
        assert xlsx.content[:2] == b"PK"

        analysis = moderator_client.get(f"/api/testseries/{live_contest.id}/detailed-analysis/")
        assert analysis.status_code == 200
        assert len(analysis.data["questions"]) == len(questions)

    def test_export_forbidden_for_students(self, student_client, live_contest):
        assert student_client.get(f"/api/testseries/{live_contest.id}/export/").status_code == 403

    def test_participant_answers(self, moderator_client, other_client, other_student, live_contest, questions):
        other_client.post(f"/api/testseries/{live_contest.id}/submit/",
                          {"answers": answers_for(questions[:1])}, format="json")
        resp = moderator_client.get(f"/api/testseries/{live_contest.id}/participant/{other_student.pk}/answers/")
        assert resp.status_code == 200
        assert resp.data["answers"][0]["is_attempted"] in (True, False)
        assert sum(1 for a in resp.data["answers"] if a["is_attempted"]) == 1
