from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    class Roles(models.TextChoices):
        USER      = "user",      "User"
        MODERATOR = "moderator", "Moderator"
        ADMIN     = "admin",     "Admin"

    class Providers(models.TextChoices):
        EMAIL  = "email",  "Email & password"
        GOOGLE = "google", "Google"

    full_name = models.CharField(max_length=150)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=Roles.choices, default=Roles.USER, db_index=True)
    auth_provider = models.CharField(max_length=16, choices=Providers.choices, default=Providers.EMAIL)

    is_email_verified = models.BooleanField(default=False)
    email_verification_code = models.CharField(max_length=6, blank=True)
    email_verification_expires_at = models.DateTimeField(null=True, blank=True)
    verification_sent_at = models.DateTimeField(null=True, blank=True)

    REQUIRED_FIELDS = ["email"]

    @property
    def is_admin(self) -> bool:
        return self.role == self.Roles.ADMIN or self.is_superuser

    @property
    def is_moderator(self) -> bool:
        return self.role == self.Roles.MODERATOR

    @property
    def is_staff_member(self) -> bool:
        return self.is_admin or self.is_moderator

    def verification_code_is_valid(self, code: str) -> bool:
        if not self.email_verification_code or not self.email_verification_expires_at:
            return False
        if timezone.now() > self.email_verification_expires_at:
            return False
        return self.email_verification_code == (code or "").strip()

    def mark_email_verified(self):
        self.is_email_verified = True
        self.email_verification_code = ""
        self.email_verification_expires_at = None
        self.save(update_fields=["is_email_verified", "email_verification_code", "email_verification_expires_at"])

    def __str__(self):
        return f"{self.full_name or self.username} • {self.email} • {self.role}"
