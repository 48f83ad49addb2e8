"""
Core views providing infrastructure endpoints.
"""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for load balancers and container orchestration.

    The database is required: webhook ingestion cannot acknowledge anything
    without it. The cache (Redis) only backs the periodic job locks, so a
    cache outage is reported but does not fail the check.

    Returns:
        JsonResponse with "status", "database" and "cache" keys.
        HTTP 200 when the database is reachable, 503 otherwise.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    status_code = 200

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.error("Health check: database unreachable", exc_info=True)
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        status_code = 503

    # django-redis is configured with IGNORE_EXCEPTIONS, so an outage
    # shows up as a cache miss rather than an exception.
    cache.set("health_check", "ok", timeout=1)
    if cache.get("health_check") == "ok":
        health_status["cache"] = "connected"
    else:
        health_status["cache"] = "disconnected"

    return JsonResponse(health_status, status=status_code)
