import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


LEVELS = [("easy", "Easy"), ("medium", "Medium"), ("hard", "Hard")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Question",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("category", models.CharField(max_length=120)),
                ("subcategory", models.CharField(max_length=120)),
                ("level", models.CharField(choices=LEVELS, max_length=10)),
                ("question", models.TextField()),
                ("options", models.JSONField(default=dict)),
                ("correct_ans", models.CharField(max_length=32)),
                ("explanation", models.TextField(blank=True)),
                ("visibility", models.BooleanField(db_index=True, default=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="questions_created", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ("-created_at",),
                "indexes": [models.Index(fields=["category", "subcategory", "level"], name="question_cat_sub_level_idx")],
            },
        ),
        migrations.CreateModel(
            name="Bookmark",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("question", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bookmarks", to="exams.question")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bookmarks", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ("-created_at",),
                "constraints": [models.UniqueConstraint(fields=("user", "question"), name="uq_bookmark_user_question")],
            },
        ),
        migrations.CreateModel(
            name="TestSeries",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("start_time", models.DateTimeField()),
                ("end_time", models.DateTimeField()),
                ("requires_code", models.BooleanField(default=False)),
                ("contest_code", models.CharField(blank=True, max_length=32, null=True, unique=True)),
                ("reminder_sent_at", models.DateTimeField(blank=True, null=True)),
                ("started_notified_at", models.DateTimeField(blank=True, null=True)),
                ("ended_notified_at", models.DateTimeField(blank=True, null=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="test_series_created", to=settings.AUTH_USER_MODEL)),
                ("questions", models.ManyToManyField(blank=True, related_name="test_series", to="exams.question")),
            ],
            options={
                "verbose_name_plural": "test series",
                "ordering": ("-start_time",),
                "indexes": [
                    models.Index(fields=["start_time"], name="testseries_start_idx"),
                    models.Index(fields=["end_time"], name="testseries_end_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="FreePractice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=200)),
                ("category", models.CharField(max_length=120)),
                ("subcategory", models.CharField(max_length=120)),
                ("level", models.CharField(choices=LEVELS, max_length=10)),
                ("start_time", models.DateTimeField(default=django.utils.timezone.now)),
                ("end_time", models.DateTimeField(blank=True, null=True)),
                ("created_by", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="free_practices", to=settings.AUTH_USER_MODEL)),
                ("questions", models.ManyToManyField(blank=True, related_name="free_practices", to="exams.question")),
            ],
            options={
                "ordering": ("-start_time",),
                "indexes": [models.Index(fields=["created_by", "start_time"], name="practice_owner_start_idx")],
            },
        ),
        migrations.CreateModel(
            name="Participation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("start_time", models.DateTimeField(default=django.utils.timezone.now)),
                ("end_time", models.DateTimeField(blank=True, null=True)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("violations", models.PositiveIntegerField(default=0)),
                ("practice_test", models.BooleanField(default=False)),
                ("contest", models.BooleanField(default=False)),
                ("auto_submitted", models.BooleanField(default=False)),
                ("free_practice", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="participations", to="exams.freepractice")),
                ("test_series", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="participations", to="exams.testseries")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="participations", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ("-start_time",),
                "indexes": [
                    models.Index(fields=["test_series", "submitted_at"], name="part_contest_submitted_idx"),
                    models.Index(fields=["user", "test_series"], name="part_user_contest_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=(
                            models.Q(("free_practice__isnull", True), ("test_series__isnull", False))
                            | models.Q(("free_practice__isnull", False), ("test_series__isnull", True))
                        ),
                        name="participation_contest_xor_practice",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("end_time__isnull", True), ("test_series__isnull", False)),
                        fields=("user", "test_series"),
                        name="uq_live_participation_per_contest",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ViolationEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(choices=[("tab_switch", "Tab/Window switch"), ("fullscreen_exit", "Fullscreen exit"), ("devtools", "DevTools opened"), ("copy", "Copy"), ("paste", "Paste"), ("multi_window", "Multiple windows"), ("other", "Other")], default="other", max_length=32)),
                ("occurred_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("participation", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="violation_events", to="exams.participation")),
            ],
            options={
                "indexes": [models.Index(fields=["participation", "occurred_at"], name="violation_part_time_idx")],
            },
        ),
        migrations.CreateModel(
            name="StudentActivity",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("time", models.DateTimeField(default=django.utils.timezone.now)),
                ("selected_answer", models.CharField(blank=True, max_length=255, null=True)),
                ("free_practice", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="activities", to="exams.freepractice")),
                ("question", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="activities", to="exams.question")),
                ("test_series", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="activities", to="exams.testseries")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="activities", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "student activities",
                "ordering": ("-time", "-id"),
                "indexes": [
                    models.Index(fields=["test_series", "user", "question"], name="activity_contest_user_q_idx"),
                    models.Index(fields=["free_practice", "question"], name="activity_practice_q_idx"),
                    models.Index(fields=["user", "time"], name="activity_user_time_idx"),
                ],
            },
        ),
    ]
