# accounts/views.py
import logging

from django.conf import settings
from django.contrib.auth import authenticate
from django.db import transaction
from django.db.models import Count
from django.shortcuts import get_object_or_404
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from rest_framework import permissions, status
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import TooManyRequests
from notifications import emails
from .models import User
from .permissions import IsAdmin, IsAdminOrModerator
from .serializers import (
    EmailOnlySerializer,
    GoogleAuthSerializer,
    LoginSerializer,
    ModeratorSerializer,
    ResetPasswordSerializer,
    SignupSerializer,
    UserSerializer,
    VerifyEmailSerializer,
)
from .utils import (
    OTP_TTL_SECONDS,
    can_send_verification,
    clear_jwt_cookie,
    issue_tokens,
    issue_verification_code,
    make_password_reset_token,
    mask_email,
    password_reset_link,
    set_jwt_cookie,
    user_from_password_reset_token,
    username_from_email,
)

logger = logging.getLogger(__name__)


def _auth_response(user, http_status=status.HTTP_200_OK, **extra):
    tokens = issue_tokens(user)
    resp = Response({"user": UserSerializer(user).data, **tokens, **extra}, status=http_status)
    return set_jwt_cookie(resp, tokens["access"])


def _create_account(data, role):
    with transaction.atomic():
        user = User.objects.create_user(
            username=username_from_email(data["email"]),
            email=data["email"],
            password=data["password"],
            full_name=data["fullName"].strip(),
            role=role,
        )
    return user


class SignupView(APIView):
    """
    POST /api/auth/signup
    Body: { "fullName": "...", "email": "...", "password": "..." }
    Creates a `user` account, emails a 6-digit verification code and signs in.
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = SignupSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = _create_account(ser.validated_data, User.Roles.USER)
        code = issue_verification_code(user)
        emails.send_verification_email(user, code, ttl_minutes=OTP_TTL_SECONDS // 60)
        emails.send_welcome_email(user)

        resp = {"detail": f"Verification code sent to {mask_email(user.email)}."}
        if settings.DEBUG:
            resp["debug_code"] = code
        return _auth_response(user, status.HTTP_201_CREATED, **resp)


class LoginView(APIView):
    """
    POST /api/auth/login
    Body: { "email": "user@example.com", "password": "secret" }
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = LoginSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        email = ser.validated_data["email"].strip().lower()
        user = User.objects.filter(email__iexact=email).first()
        if not user:
            raise ValidationError("Invalid credentials")
        if not user.has_usable_password():
            raise ValidationError("This account uses Google sign-in.")

        auth_user = authenticate(request, username=user.username, password=ser.validated_data["password"])
        if not auth_user:
            raise ValidationError("Invalid credentials")
        return _auth_response(auth_user)


class LogoutView(APIView):
    """
    POST /api/auth/logout
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        resp = Response({"detail": "User logged out successfully"}, status=status.HTTP_200_OK)
        return clear_jwt_cookie(resp)


class MeView(APIView):
    """
    GET /api/auth/me
    """

    def get(self, request):
        return Response(UserSerializer(request.user).data)


class VerifyEmailView(APIView):
    """
    POST /api/auth/verify-email
    Body: { "email": "...", "code": "123456" }
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = VerifyEmailSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = User.objects.filter(email__iexact=ser.validated_data["email"].strip()).first()
        if not user:
            raise ValidationError("Invalid or expired code.")
        if user.is_email_verified:
            return Response({"detail": "Email already verified.", "user": UserSerializer(user).data})
        if not user.verification_code_is_valid(ser.validated_data["code"]):
            raise ValidationError("Invalid or expired code.")

        user.mark_email_verified()
        return Response({"detail": "Email verified successfully.", "user": UserSerializer(user).data})


class ResendVerificationView(APIView):
    """
    POST /api/auth/resend-verification
    Body: { "email": "..." }
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = EmailOnlySerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = User.objects.filter(email__iexact=ser.validated_data["email"].strip()).first()
        if not user:
            raise NotFound("User is not registered")
        if user.is_email_verified:
            raise ValidationError("Email already verified.")
        if not can_send_verification(user):
            raise TooManyRequests("Please wait a minute before requesting another code.")

        code = issue_verification_code(user)
        emails.send_verification_email(user, code, ttl_minutes=OTP_TTL_SECONDS // 60)

        resp = {"detail": f"Verification code sent to {mask_email(user.email)}."}
        if settings.DEBUG:
            resp["debug_code"] = code
        return Response(resp)


class ForgotPasswordView(APIView):
    """
    POST /api/auth/forgot-password
    Body: { "email": "..." }
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = EmailOnlySerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = User.objects.filter(email__iexact=ser.validated_data["email"].strip()).first()
        if not user:
            raise NotFound("User is not registered")

        token = make_password_reset_token(user)
        emails.send_password_reset_email(user, password_reset_link(token))
        return Response({"detail": "Password reset link sent to your email."})


class ResetPasswordView(APIView):
    """
    POST /api/auth/reset-password
    Body: { "token": "...", "newPassword": "..." }
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = ResetPasswordSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        user = user_from_password_reset_token(ser.validated_data["token"])
        if not user:
            raise ValidationError("Reset token is invalid or has expired.")

        user.set_password(ser.validated_data["newPassword"])
        user.save(update_fields=["password"])
        return Response({"detail": "Password has been reset successfully."})


class GoogleAuthView(APIView):
    """
    POST /api/auth/google-auth
    Body: { "id_token": "<Google ID token>" }
    First sign-in creates a verified `user` account without a usable password.
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = GoogleAuthSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            payload = google_id_token.verify_oauth2_token(
                ser.validated_data["id_token"], google_requests.Request(), settings.GOOGLE_CLIENT_ID
            )
        except ValueError:
            logger.warning("Rejected Google ID token")
            raise ValidationError("Invalid Google token.")

        email = (payload.get("email") or "").strip().lower()
        if not email:
            raise ValidationError("Google account has no email.")

        user = User.objects.filter(email__iexact=email).first()
        created = user is None
        if created:
            user = User(
                username=username_from_email(email),
                email=email,
                full_name=payload.get("name") or email.split("@")[0],
                role=User.Roles.USER,
                auth_provider=User.Providers.GOOGLE,
                is_email_verified=True,
            )
            user.set_unusable_password()
            user.save()
            emails.send_welcome_email(user)

        tokens = issue_tokens(user)
        resp = Response(
            {"token": tokens["access"], **tokens, "user": UserSerializer(user).data, "created": created},
            status=status.HTTP_200_OK,
        )
        return set_jwt_cookie(resp, tokens["access"])


class CreateModeratorView(APIView):
    """
    POST /api/auth/create-moderator   (admin)
    Body: { "fullName": "...", "email": "...", "password": "..." }
    """
    permission_classes = [IsAdmin]

    def post(self, request):
        ser = SignupSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        user = _create_account(ser.validated_data, User.Roles.MODERATOR)
        user.mark_email_verified()
        return Response(ModeratorSerializer(user).data, status=status.HTTP_201_CREATED)


class ModeratorListView(APIView):
    """
    GET /api/auth/moderators   (admin/moderator)
    """
    permission_classes = [IsAdminOrModerator]

    def get(self, request):
        qs = User.objects.filter(role=User.Roles.MODERATOR).order_by("-date_joined")
        return Response(ModeratorSerializer(qs, many=True).data)


class ModeratorDeleteView(APIView):
    """
    DELETE /api/auth/moderators/<id>   (admin)
    """
    permission_classes = [IsAdmin]

    def delete(self, request, pk):
        moderator = get_object_or_404(User, pk=pk, role=User.Roles.MODERATOR)
        moderator.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class UserListView(APIView):
    """
    GET /api/auth/users?role=user   (admin/moderator)
    """
    permission_classes = [IsAdminOrModerator]

    def get(self, request):
        qs = User.objects.all().order_by("-date_joined")
        role = request.query_params.get("role")
        if role:
            qs = qs.filter(role=role)
        return Response(UserSerializer(qs, many=True).data)


class AdminStatsView(APIView):
    """
    GET /api/auth/admin/stats   (admin/moderator)
    """
    permission_classes = [IsAdminOrModerator]

    def get(self, request):
        from exams.models import Participation, Question, TestSeries

        by_role = {r: 0 for r in User.Roles.values}
        for row in User.objects.values("role").annotate(n=Count("id")):
            by_role[row["role"]] = row["n"]

        return Response({
            "users": sum(by_role.values()),
            "users_by_role": by_role,
            "questions": Question.objects.count(),
            "contests": TestSeries.objects.count(),
            "participations": Participation.objects.filter(test_series__isnull=False).count(),
            "practice_sessions": Participation.objects.filter(free_practice__isnull=False).count(),
        })
