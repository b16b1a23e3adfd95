# notifications/views.py
import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsAdmin
from common.enums import NotificationType
from .models import Notification
from .serializers import NotificationSerializer
from .services import get_dispatcher

logger = logging.getLogger(__name__)

LATEST_LIMIT = 20


class NotificationListView(APIView):
    """
    GET /api/notifications/
    Latest 20 notifications of the current user, newest first.
    """

    def get(self, request):
        qs = Notification.objects.filter(user=request.user)[:LATEST_LIMIT]
        return Response(NotificationSerializer(qs, many=True).data)


class UnreadCountView(APIView):
    """
    GET /api/notifications/unread-count/
    """

    def get(self, request):
        count = Notification.objects.filter(user=request.user, is_read=False).count()
        return Response({"count": count})


class MarkReadView(APIView):
    """
    PATCH /api/notifications/<id>/read/
    """

    def patch(self, request, pk):
        n = get_object_or_404(Notification, pk=pk, user=request.user)
        if not n.is_read:
            n.is_read = True
            n.save(update_fields=["is_read"])
        return Response(NotificationSerializer(n).data)

    post = patch


class MarkAllReadView(APIView):
    """
    PATCH /api/notifications/read-all/
    """

    def patch(self, request):
        updated = Notification.objects.filter(user=request.user, is_read=False).update(is_read=True)
        return Response({"updated": updated})

    post = patch


class NotificationDeleteView(APIView):
    """
    DELETE /api/notifications/<id>/
    """

    def delete(self, request, pk):
        n = get_object_or_404(Notification, pk=pk, user=request.user)
        n.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class TestNotificationView(APIView):
    """
    POST /api/notifications/test/
    Sends a notification to yourself; handy for checking the real-time channel.
    """

    def post(self, request):
        n = get_dispatcher().send_to_user(
            request.user,
            request.data.get("title") or "Test Notification",
            request.data.get("message") or "This is a test notification.",
            type=NotificationType.GENERAL,
        )
        if n is None:
            return Response({"detail": "Notification could not be stored."},
                            status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(NotificationSerializer(n).data, status=status.HTTP_201_CREATED)


class SystemUpdateView(APIView):
    """
    POST /api/notifications/system-update/   (admin only)
    Body: { "message": "..." }
    Broadcasts a SYSTEM_UPDATE notification to every active user.
    """
    permission_classes = [IsAdmin]

    def post(self, request):
        message = (request.data.get("message") or "").strip()
        if not message:
            raise ValidationError({"message": "This field is required."})
        created = get_dispatcher().notify_system_update(message)
        logger.info("User %s broadcast a system update to %d user(s)", request.user.pk, len(created))
        return Response({"sent": len(created)}, status=status.HTTP_201_CREATED)
