import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                ("message", models.TextField()),
                ("type", models.CharField(choices=[("CONTEST_ANNOUNCED", "Contest announced"), ("CONTEST_STARTED", "Contest started"), ("CONTEST_ENDED", "Contest ended"), ("RESULT_AVAILABLE", "Result available"), ("HIGH_SCORE", "High score"), ("SYSTEM_UPDATE", "System update"), ("NEW_QUESTION", "New question"), ("GENERAL", "General")], default="GENERAL", max_length=32)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("is_read", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="notifications", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ("-created_at", "-id"),
                "indexes": [
                    models.Index(fields=["user", "is_read"], name="notif_user_read_idx"),
                    models.Index(fields=["user", "created_at"], name="notif_user_created_idx"),
                ],
            },
        ),
    ]
