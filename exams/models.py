from __future__ import annotations

import secrets
import string
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from common.enums import Level, ViolationType


# ----------------------------
# Common
# ----------------------------

class TimeStampedModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


CONTEST_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_contest_code(length: int = 8) -> str:
    return "".join(secrets.choice(CONTEST_CODE_ALPHABET) for _ in range(length))


# ----------------------------
# Question bank
# ----------------------------

class Question(TimeStampedModel):
    category    = models.CharField(max_length=120)
    subcategory = models.CharField(max_length=120)
    level       = models.CharField(max_length=10, choices=Level.choices)
    question    = models.TextField()
    options     = models.JSONField(default=dict)   # {"A": "...", "B": "..."}
    correct_ans = models.CharField(max_length=32)
    explanation = models.TextField(blank=True)
    visibility  = models.BooleanField(default=True, db_index=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="questions_created",
    )

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["category", "subcategory", "level"], name="question_cat_sub_level_idx"),
        ]

    def clean(self):
        if not isinstance(self.options, dict) or len(self.options) < 2:
            raise ValidationError({"options": "Provide at least two options as a key → text mapping."})
        if str(self.correct_ans) not in {str(k) for k in self.options}:
            raise ValidationError({"correct_ans": "correct_ans must be one of the option keys."})

    def __str__(self):
        return f"[{self.category}/{self.subcategory}] {self.question[:60]}"


class Bookmark(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="bookmarks")
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name="bookmarks")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)
        constraints = [
            models.UniqueConstraint(fields=["user", "question"], name="uq_bookmark_user_question"),
        ]


# ----------------------------
# Contests
# ----------------------------

class TestSeries(TimeStampedModel):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    start_time = models.DateTimeField()
    end_time   = models.DateTimeField()

    requires_code = models.BooleanField(default=False)
    contest_code  = models.CharField(max_length=32, unique=True, null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="test_series_created",
    )
    questions = models.ManyToManyField(Question, related_name="test_series", blank=True)

    # lifecycle notifier bookkeeping
    reminder_sent_at    = models.DateTimeField(null=True, blank=True)
    started_notified_at = models.DateTimeField(null=True, blank=True)
    ended_notified_at   = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-start_time",)
        verbose_name_plural = "test series"
        indexes = [
            models.Index(fields=["start_time"], name="testseries_start_idx"),
            models.Index(fields=["end_time"], name="testseries_end_idx"),
        ]

    def clean(self):
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValidationError("start_time must be earlier than end_time")

    def ensure_code(self):
        if self.requires_code and not self.contest_code:
            code = generate_contest_code()
            while TestSeries.objects.filter(contest_code=code).exists():
                code = generate_contest_code()
            self.contest_code = code
        return self.contest_code

    @property
    def has_started(self) -> bool:
        return self.start_time <= timezone.now()

    @property
    def has_ended(self) -> bool:
        return self.end_time <= timezone.now()

    @property
    def status(self) -> str:
        if self.has_ended:
            return "ended"
        return "live" if self.has_started else "upcoming"

    def __str__(self):
        return self.title


# ----------------------------
# Free practice
# ----------------------------

class FreePractice(TimeStampedModel):
    title = models.CharField(max_length=200)
    category    = models.CharField(max_length=120)
    subcategory = models.CharField(max_length=120)
    level       = models.CharField(max_length=10, choices=Level.choices)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="free_practices",
    )
    start_time = models.DateTimeField(default=timezone.now)
    end_time   = models.DateTimeField(null=True, blank=True)   # set on submit
    questions  = models.ManyToManyField(Question, related_name="free_practices", blank=True)

    class Meta:
        ordering = ("-start_time",)
        indexes = [models.Index(fields=["created_by", "start_time"], name="practice_owner_start_idx")]

    @property
    def is_submitted(self) -> bool:
        return self.end_time is not None

    def __str__(self):
        return f"{self.title} · {self.created_by_id}"


# ----------------------------
# Participation ledger / activity log
# ----------------------------

class Participation(TimeStampedModel):
    """
    One user's session in exactly one contest or one free practice.
    Live while end_time is NULL; closed by an explicit submit or the sweeper.
    """
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="participations")
    test_series   = models.ForeignKey(TestSeries, on_delete=models.CASCADE, null=True, blank=True,
                                      related_name="participations")
    free_practice = models.ForeignKey(FreePractice, on_delete=models.CASCADE, null=True, blank=True,
                                      related_name="participations")

    start_time   = models.DateTimeField(default=timezone.now)
    end_time     = models.DateTimeField(null=True, blank=True)
    submitted_at = models.DateTimeField(null=True, blank=True)

    violations     = models.PositiveIntegerField(default=0)
    practice_test  = models.BooleanField(default=False)
    contest        = models.BooleanField(default=False)
    auto_submitted = models.BooleanField(default=False)

    class Meta:
        ordering = ("-start_time",)
        indexes = [
            models.Index(fields=["test_series", "submitted_at"], name="part_contest_submitted_idx"),
            models.Index(fields=["user", "test_series"], name="part_user_contest_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(test_series__isnull=False, free_practice__isnull=True)
                    | Q(test_series__isnull=True, free_practice__isnull=False)
                ),
                name="participation_contest_xor_practice",
            ),
            models.UniqueConstraint(
                fields=["user", "test_series"],
                condition=Q(end_time__isnull=True, test_series__isnull=False),
                name="uq_live_participation_per_contest",
            ),
        ]

    @property
    def is_live(self) -> bool:
        return self.end_time is None and self.submitted_at is None

    def __str__(self):
        return f"{self.user_id} · {self.test_series_id or self.free_practice_id}"


class ViolationEvent(models.Model):
    participation = models.ForeignKey(Participation, on_delete=models.CASCADE, related_name="violation_events")
    type = models.CharField(max_length=32, choices=ViolationType.choices, default=ViolationType.OTHER)
    occurred_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [models.Index(fields=["participation", "occurred_at"], name="violation_part_time_idx")]


class StudentActivity(models.Model):
    """Append-only answer log. Scoring reads the latest row per (user, question)."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="activities")
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name="activities")
    test_series   = models.ForeignKey(TestSeries, on_delete=models.CASCADE, null=True, blank=True,
                                      related_name="activities")
    free_practice = models.ForeignKey(FreePractice, on_delete=models.CASCADE, null=True, blank=True,
                                      related_name="activities")
    time = models.DateTimeField(default=timezone.now)
    selected_answer = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        ordering = ("-time", "-id")
        verbose_name_plural = "student activities"
        indexes = [
            models.Index(fields=["test_series", "user", "question"], name="activity_contest_user_q_idx"),
            models.Index(fields=["free_practice", "question"], name="activity_practice_q_idx"),
            models.Index(fields=["user", "time"], name="activity_user_time_idx"),
        ]
