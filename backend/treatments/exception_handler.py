"""
Unified exception handler
=========================
Registered as REST_FRAMEWORK['EXCEPTION_HANDLER']; every exception a view
does not catch ends up here and is rendered in one JSON shape.
"""
import structlog
from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response
from rest_framework import status

from .exceptions import BaseAppException

logger = structlog.get_logger(__name__)


def _log_context(context):
    request = context.get("request")
    view = context.get("view")
    return {
        "path": request.path if request else "unknown",
        "method": request.method if request else "unknown",
        "view": view.__class__.__name__ if view else "unknown",
    }


def unified_exception_handler(exc, context):
    """
    1. BaseAppException -> its own to_dict()
    2. DRF exceptions (serializer ValidationError, 404, ...) -> same shape
    3. anything else -> generic 500, no internals leaked
    """

    # ────────────────────────────────────────────
    # Case 1: our own exceptions
    # ────────────────────────────────────────────
    if isinstance(exc, BaseAppException):
        logger.info(
            "app_exception",
            exc_type=exc.__class__.__name__,
            code=exc.code,
            **_log_context(context),
        )
        return Response(exc.to_dict(), status=exc.http_status)

    # ────────────────────────────────────────────
    # Case 2: exceptions DRF already knows
    # ────────────────────────────────────────────
    response = drf_exception_handler(exc, context)

    if response is not None:
        # response.data may be a dict of field -> messages, a list or a string
        detail = []
        if isinstance(response.data, dict):
            for field, messages in response.data.items():
                if isinstance(messages, list):
                    for msg in messages:
                        detail.append(f"{field}: {msg}")
                else:
                    detail.append(f"{field}: {messages}")
        elif isinstance(response.data, list):
            detail = [str(item) for item in response.data]
        else:
            detail = [str(response.data)]

        if response.status_code == status.HTTP_400_BAD_REQUEST:
            code, message = "VALIDATION_ERROR", "Input validation failed"
        else:
            code = getattr(exc, "default_code", "ERROR").upper()
            message = str(getattr(exc, "detail", "An error occurred"))

        return Response(
            {
                "type": "error",
                "code": code,
                "message": message,
                "detail": detail,
            },
            status=response.status_code
        )

    # ────────────────────────────────────────────
    # Case 3: unexpected, log it and hide the stack trace
    # ────────────────────────────────────────────
    logger.exception("unexpected_error", **_log_context(context))

    return Response(
        {
            "type": "error",
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "detail": [],
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
