# accounts/permissions.py
from rest_framework.permissions import BasePermission


def _role(user):
    return getattr(user, "role", None)


class IsAdmin(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and (_role(request.user) == "admin" or request.user.is_superuser))


class IsModerator(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and _role(request.user) == "moderator")


class IsAdminOrModerator(BasePermission):
    message = "Forbidden: Insufficient role"

    def has_permission(self, request, view):
        return IsAdmin().has_permission(request, view) or IsModerator().has_permission(request, view)
