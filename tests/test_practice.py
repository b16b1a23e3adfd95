import pytest

from exams.models import FreePractice, Participation, StudentActivity
from tests.conftest import make_question


@pytest.fixture
def pool(db):
    return [make_question(question=f"Pool {i}", correct="B") for i in range(6)]


def _create(client, n=3, **extra):
    body = {"category": "Aptitude", "subcategory": "Percentages", "level": "easy", "numQuestions": n, **extra}
    return client.post("/api/free-practice/", body, format="json")


@pytest.mark.django_db
class TestFreePractice:
    def test_create_picks_visible_questions(self, student_client, student, pool):
        pool[0].visibility = False
        pool[0].save()
        resp = _create(student_client, n=5)
        assert resp.status_code == 201, resp.data
        fp = FreePractice.objects.get(pk=resp.data["free_practice"]["id"])
        ids = set(fp.questions.values_list("pk", flat=True))
        assert len(ids) == 5
        assert pool[0].pk not in ids
        assert "correct_ans" not in resp.data["free_practice"]["questions"][0]
        assert Participation.objects.filter(user=student, free_practice=fp, practice_test=True).exists()

    def test_not_enough_questions(self, student_client, pool):
        assert _create(student_client, n=10).status_code == 400

    def test_missing_fields(self, student_client, pool):
        resp = student_client.post("/api/free-practice/", {"category": "Aptitude"}, format="json")
        assert resp.status_code == 400

    def test_submit_and_results(self, student_client, student, pool):
        fp_id = _create(student_client, n=2).data["free_practice"]["id"]
        fp = FreePractice.objects.get(pk=fp_id)
        q1, q2 = fp.questions.all()
        body = {"answers": [
            {"questionId": str(q1.id), "selectedOption": "B"},
            {"questionId": str(q2.id), "selectedOption": "A"},
        ]}

        resp = student_client.post(f"/api/free-practice/{fp_id}/submit/", body, format="json")
        assert resp.status_code == 200, resp.data
        assert resp.data["score"] == 1
        assert resp.data["percentage"] == 50
        assert StudentActivity.objects.filter(free_practice=fp).count() == 2
        assert Participation.objects.get(free_practice=fp).submitted_at is not None

        again = student_client.post(f"/api/free-practice/{fp_id}/submit/", body, format="json")
        assert again.status_code == 400

        results = student_client.get(f"/api/free-practice/{fp_id}/results/")
        assert results.status_code == 200
        assert results.data["score"] == 1

    def test_submit_by_someone_else(self, student_client, other_client, pool):
        fp_id = _create(student_client, n=2).data["free_practice"]["id"]
        resp = other_client.post(f"/api/free-practice/{fp_id}/submit/",
                                 {"answers": [{"questionId": str(pool[0].id), "selectedOption": "B"}]},
                                 format="json")
        assert resp.status_code == 403

    def test_stats_without_submissions(self, student_client, pool):
        _create(student_client, n=2)
        resp = student_client.get("/api/free-practice/stats/")
        assert resp.status_code == 200
        assert resp.data["tests_taken"] == 1
        assert resp.data["average_percentage"] is None
        assert resp.data["average_display"] == "N/A"

    def test_dashboard(self, student_client, pool):
        fp_id = _create(student_client, n=2).data["free_practice"]["id"]
        fp = FreePractice.objects.get(pk=fp_id)
        student_client.post(f"/api/free-practice/{fp_id}/submit/", {"answers": [
            {"questionId": str(q.id), "selectedOption": "B"} for q in fp.questions.all()
        ]}, format="json")

        stats = student_client.get("/api/dashboard/stats/")
        assert stats.status_code == 200
        assert stats.data["total_tests"] == 1
        assert stats.data["average_score"] == 100
        assert stats.data["total_questions"] == 2

        recent = student_client.get("/api/dashboard/recent-tests/")
        assert recent.status_code == 200
        assert recent.data[0]["question_count"] == 2
