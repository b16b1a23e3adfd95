from django.conf import settings
from django.db import models

from common.enums import NotificationType


class Notification(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    title = models.CharField(max_length=200)
    message = models.TextField()
    type = models.CharField(max_length=32, choices=NotificationType.choices, default=NotificationType.GENERAL)
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at", "-id")
        indexes = [
            models.Index(fields=["user", "is_read"], name="notif_user_read_idx"),
            models.Index(fields=["user", "created_at"], name="notif_user_created_idx"),
        ]

    def __str__(self):
        return f"{self.user_id} · {self.type} · {self.title}"
