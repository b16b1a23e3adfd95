from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from exams.models import Participation, Question, StudentActivity, TestSeries
from exams.services.leaderboard import build_leaderboard as real_board
from exams.services.scoring import score_answers as real_score
from exams.services.submission import submit_contest
from exams.tasks import (
    AUTO_SUBMITTED,
    announce_lifecycle,
    restore_question_visibility,
    sweep_expired_contests,
)
from tests.conftest import make_contest, make_user


@pytest.fixture
def ended_contest(questions):
    now = timezone.now()
    return make_contest(questions, start=now - timedelta(hours=2), end=now - timedelta(minutes=1))


@pytest.mark.django_db
class TestSweep:
    def test_closes_open_participations_once(self, ended_contest, questions, student, fake_dispatcher):
        p = Participation.objects.create(
            user=student, test_series=ended_contest, contest=True,
            start_time=ended_contest.start_time + timedelta(minutes=5),
        )
        StudentActivity.objects.create(user=student, question=questions[0], test_series=ended_contest,
                                       selected_answer="B", time=ended_contest.start_time + timedelta(minutes=6))
        StudentActivity.objects.create(user=student, question=questions[0], test_series=ended_contest,
                                       selected_answer="A", time=ended_contest.start_time + timedelta(minutes=7))

        now = timezone.now()
        assert sweep_expired_contests(now, dispatcher=fake_dispatcher) == {"closed": 1, "failed": 0}

        p.refresh_from_db()
        assert p.auto_submitted
        assert p.end_time == now and p.submitted_at == now

        (user_id, result), = fake_dispatcher.results
        assert user_id == student.pk
        assert result["score"] == 1
        assert result["total"] == len(questions)
        assert result["time_taken"] == AUTO_SUBMITTED
        assert result["auto_submitted"] is True

        # second tick finds nothing
        assert sweep_expired_contests(timezone.now(), dispatcher=fake_dispatcher) == {"closed": 0, "failed": 0}
        assert len(fake_dispatcher.results) == 1

    def test_running_contests_untouched(self, live_contest, student, fake_dispatcher):
        Participation.objects.create(user=student, test_series=live_contest, contest=True)
        assert sweep_expired_contests(dispatcher=fake_dispatcher)["closed"] == 0
        assert Participation.objects.get().is_live

    def test_user_submit_after_sweep_is_rejected(self, ended_contest, questions, student, fake_dispatcher):
        Participation.objects.create(user=student, test_series=ended_contest, contest=True)
        sweep_expired_contests(dispatcher=fake_dispatcher)

        with pytest.raises(ValidationError):
            submit_contest(student, ended_contest,
                           [{"question_id": str(questions[0].id), "selected_option": "A"}],
                           dispatcher=fake_dispatcher)
        assert len(fake_dispatcher.results) == 1

    def test_failure_is_isolated(self, ended_contest, fake_dispatcher):
        alice = make_user("alice@example.com")
        bob = make_user("bob@example.com")
        for u in (alice, bob):
            Participation.objects.create(user=u, test_series=ended_contest, contest=True)

        calls = []

        def flaky(questions, answers):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return real_score(questions, answers)

        with patch("exams.tasks.score_answers", side_effect=flaky):
            counts = sweep_expired_contests(dispatcher=fake_dispatcher)

        assert counts == {"closed": 1, "failed": 1}
        assert len(fake_dispatcher.results) == 1
        # the failed one is still open and the next tick closes it
        assert Participation.objects.filter(end_time__isnull=True).count() == 1
        assert sweep_expired_contests(dispatcher=fake_dispatcher) == {"closed": 1, "failed": 0}

    def test_notification_failure_still_closes(self, ended_contest, fake_dispatcher):
        users = [make_user(f"user{i}@example.com") for i in range(3)]
        for u in users:
            Participation.objects.create(user=u, test_series=ended_contest, contest=True)

        delivered = fake_dispatcher.send_result
        attempts = []

        def flaky_send(user, result):
            attempts.append(user.pk)
            if len(attempts) == 1:
                raise RuntimeError("smtp down")
            delivered(user, result)

        fake_dispatcher.send_result = flaky_send
        assert sweep_expired_contests(dispatcher=fake_dispatcher) == {"closed": 3, "failed": 0}

        assert len(attempts) == 3
        assert len(fake_dispatcher.results) == 2
        assert not Participation.objects.filter(end_time__isnull=True).exists()
        assert all(p.auto_submitted for p in Participation.objects.all())

    def test_leaderboard_built_once_per_contest(self, ended_contest, fake_dispatcher):
        for i in range(4):
            Participation.objects.create(user=make_user(f"p{i}@example.com"), test_series=ended_contest, contest=True)

        with patch("exams.tasks.build_leaderboard", wraps=real_board) as board:
            assert sweep_expired_contests(dispatcher=fake_dispatcher)["closed"] == 4

        assert board.call_count == 1
        assert sorted(r["rank"] for _, r in fake_dispatcher.results) == [1, 2, 3, 4]


@pytest.mark.django_db
class TestVisibility:
    def test_restore_after_end(self, ended_contest, questions):
        Question.objects.update(visibility=False)
        assert restore_question_visibility() == len(questions)
        assert not Question.objects.filter(visibility=False).exists()

    def test_shared_with_running_contest_stays_hidden(self, ended_contest, questions):
        make_contest(questions[:1], title="Still running")
        Question.objects.update(visibility=False)
        restore_question_visibility()
        assert list(Question.objects.filter(visibility=False)) == [questions[0]]


@pytest.mark.django_db
class TestLifecycle:
    def test_each_event_fires_once(self, questions, fake_dispatcher):
        now = timezone.now()
        soon = make_contest(questions, title="Soon", start=now + timedelta(minutes=30), end=now + timedelta(hours=2))
        running = make_contest(questions, title="Running")
        done = make_contest(questions, title="Done", start=now - timedelta(hours=2), end=now - timedelta(hours=1))

        assert announce_lifecycle(now, dispatcher=fake_dispatcher) == {"started": 1, "ended": 1, "reminded": 1}
        assert announce_lifecycle(now, dispatcher=fake_dispatcher) == {"started": 0, "ended": 0, "reminded": 0}
        assert sorted(fake_dispatcher.calls) == sorted([
            ("reminder", soon.pk), ("started", running.pk), ("ended", done.pk),
        ])
        assert TestSeries.objects.get(pk=done.pk).ended_notified_at == now
