"""
Core views providing infrastructure endpoints and error rendering.

This module contains views that are not part of the business domain but are
essential for application infrastructure, such as health checks, plus the
shared translation from domain exceptions to DRF responses.
"""

import logging

from django.db import connection
from django.http import JsonResponse
from rest_framework.response import Response

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def error_response(exc: BaseApplicationError) -> Response:
    """
    Render a domain exception as a DRF response.

    Status comes from the exception class (ValidationError 400,
    PermissionDeniedError 403, NotFoundError 404, ConflictError 409,
    ExternalServiceError 502, InternalError 500).

    Usage:
        try:
            booking = BookingService.accept(request.user, booking_id)
        except BaseApplicationError as e:
            return error_response(e)
    """
    if exc.http_status >= 500:
        logger.error(
            f"Request failed: {exc}",
            extra={"error_code": exc.error_code},
        )
    return Response(exc.to_dict(), status=exc.http_status)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: All systems operational
        503: Database unreachable
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        logger.exception("Health check database query failed")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        # Cache failure degrades PlatformSettings caching only
        logger.warning("Health check cache round-trip failed", exc_info=True)
        health_status["cache"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
