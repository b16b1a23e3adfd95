# tests/conftest.py
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from exams.models import Question, TestSeries


class FakeDispatcher:
    """Records what would have been sent instead of touching Redis or SMTP."""

    def __init__(self):
        self.results = []
        self.calls = []

    def send_result(self, user, result):
        self.results.append((user.pk, result))

    def notify_contest_started(self, contest):
        self.calls.append(("started", contest.pk))

    def notify_contest_ended(self, contest):
        self.calls.append(("ended", contest.pk))

    def notify_contest_reminder(self, contest):
        self.calls.append(("reminder", contest.pk))
        return 0


def make_user(email, role=User.Roles.USER, password="secret123", **extra):
    return User.objects.create_user(
        username=email.split("@")[0],
        email=email,
        password=password,
        full_name=extra.pop("full_name", email.split("@")[0].title()),
        role=role,
        **extra,
    )


def make_question(category="Aptitude", subcategory="Percentages", level="easy", correct="A", **extra):
    return Question.objects.create(
        category=category,
        subcategory=subcategory,
        level=level,
        question=extra.pop("question", "What is 10% of 50?"),
        options=extra.pop("options", {"A": "5", "B": "10", "C": "15", "D": "50"}),
        correct_ans=correct,
        **extra,
    )


def make_contest(questions, start=None, end=None, **extra):
    now = timezone.now()
    ts = TestSeries.objects.create(
        title=extra.pop("title", "Weekly Contest"),
        start_time=start or now - timedelta(minutes=30),
        end_time=end or now + timedelta(minutes=30),
        **extra,
    )
    ts.questions.set(questions)
    return ts


@pytest.fixture
def fake_dispatcher():
    return FakeDispatcher()


@pytest.fixture
def student(db):
    return make_user("student@example.com")


@pytest.fixture
def other_student(db):
    return make_user("other@example.com")


@pytest.fixture
def moderator(db):
    return make_user("mod@example.com", role=User.Roles.MODERATOR)


@pytest.fixture
def admin_user(db):
    return make_user("admin@example.com", role=User.Roles.ADMIN)


@pytest.fixture
def anon_client():
    return APIClient()


def _client_for(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def student_client(student):
    return _client_for(student)


@pytest.fixture
def other_client(other_student):
    return _client_for(other_student)


@pytest.fixture
def moderator_client(moderator):
    return _client_for(moderator)


@pytest.fixture
def admin_client(admin_user):
    return _client_for(admin_user)


@pytest.fixture
def questions(db):
    return [
        make_question(question=f"Question {i}", correct="A" if i % 2 else "B")
        for i in range(1, 5)
    ]


@pytest.fixture
def live_contest(questions):
    return make_contest(questions)


@pytest.fixture(autouse=True)
def _no_push(settings):
    settings.NOTIFICATIONS_PUSH_ENABLED = False
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
