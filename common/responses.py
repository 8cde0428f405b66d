"""Uniform error bodies for typed domain failures."""

from rest_framework import status as http
from rest_framework.response import Response


def error_response(exc: Exception, status_code: int = http.HTTP_400_BAD_REQUEST, **extra) -> Response:
    """Render a domain exception as `{"detail": ..., "code": ...}` plus any extra keys."""

    body = {
        "detail": str(exc),
        "code": getattr(exc, "code", "error"),
    }
    body.update(extra)
    return Response(body, status=status_code)
