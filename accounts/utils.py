# accounts/utils.py
import random
import re
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.tokens import default_token_generator
from django.utils import timezone
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_decode, urlsafe_base64_encode
from django.utils.text import slugify
from rest_framework_simplejwt.tokens import RefreshToken

from .models import User

OTP_TTL_SECONDS = 10 * 60           # 10 minutes
OTP_RESEND_COOLDOWN_SECONDS = 60     # 1 minute between sends to the same user


def generate_otp_code(length: int = 6) -> str:
    return "".join(random.choices("0123456789", k=length))


def mask_email(email: str | None) -> str:
    if not email:
        return ""
    name, _, domain = email.partition("@")
    if not domain:
        return email
    masked = (name[0] + "*" * max(1, len(name) - 2) + name[-1]) if len(name) > 2 else name[0] + "*"
    return f"{masked}@{domain}"


def username_from_email(email: str, max_len: int = 30) -> str:
    """
    Build a unique, URL-safe username from the email's local-part.
    """
    local = (email or "").split("@")[0]
    base = slugify(local).lower()
    base = re.sub(r"[^a-z0-9._-]", "", base) or "user"
    # leave room for numeric suffixes
    base = base[: max_len - 4]

    candidate = base
    i = 0
    while User.objects.filter(username__iexact=candidate).exists():
        i += 1
        candidate = f"{base}{i}"
    return candidate


def can_send_verification(user: User) -> bool:
    if not user.verification_sent_at:
        return True
    return (timezone.now() - user.verification_sent_at) >= timedelta(seconds=OTP_RESEND_COOLDOWN_SECONDS)


def issue_verification_code(user: User) -> str:
    """
    Stores a fresh 6-digit code on the user (10 minute TTL) and returns it.
    Delivery is the caller's job.
    """
    now = timezone.now()
    code = generate_otp_code()
    user.email_verification_code = code
    user.email_verification_expires_at = now + timedelta(seconds=OTP_TTL_SECONDS)
    user.verification_sent_at = now
    user.save(update_fields=["email_verification_code", "email_verification_expires_at", "verification_sent_at"])
    return code


# ---------- password reset ----------
def make_password_reset_token(user: User) -> str:
    """
    "<uidb64>.<token>". Single use: the token is bound to the password hash
    and expires after settings.PASSWORD_RESET_TIMEOUT.
    """
    uidb64 = urlsafe_base64_encode(force_bytes(user.pk))
    return f"{uidb64}.{default_token_generator.make_token(user)}"


def user_from_password_reset_token(token: str) -> User | None:
    uidb64, _, raw = (token or "").partition(".")
    if not uidb64 or not raw:
        return None
    try:
        pk = force_str(urlsafe_base64_decode(uidb64))
        user = User.objects.get(pk=pk)
    except (ValueError, TypeError, OverflowError, User.DoesNotExist):
        return None
    if not default_token_generator.check_token(user, raw):
        return None
    return user


def password_reset_link(token: str) -> str:
    return f"{settings.FRONTEND_URL}/reset-password?token={token}"


# ---------- JWT ----------
def issue_tokens(user: User) -> dict:
    refresh = RefreshToken.for_user(user)
    refresh["role"] = user.role
    access = refresh.access_token
    access["role"] = user.role
    return {"access": str(access), "refresh": str(refresh)}


def set_jwt_cookie(response, access_token: str):
    lifetime = settings.SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"]
    response.set_cookie(
        settings.JWT_COOKIE_NAME,
        access_token,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        samesite="Strict",
        secure=settings.JWT_COOKIE_SECURE,
    )
    return response


def clear_jwt_cookie(response):
    response.delete_cookie(settings.JWT_COOKIE_NAME, samesite="Strict")
    return response
