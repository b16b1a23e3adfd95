# common/exceptions.py
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class TooManyRequests(APIException):
    status_code = 429
    default_detail = "Please wait before trying again."
    default_code = "too_many_requests"


def api_exception_handler(exc, context):
    """
    DRF handler for the whole API.
      - model/service ValidationError → 400 with the same messages
      - anything DRF knows (400/401/403/404/429) → DRF default
      - everything else → logged here, generic 500 to the client
    """
    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, "error_dict") else exc.messages
        exc = ValidationError(detail)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get("view")
    logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "API view", exc_info=exc)
    return Response({"detail": "Internal Server Error"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
