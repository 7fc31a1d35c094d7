"""
CommandResult -> HTTP translation shared by the API apps.
"""
from rest_framework import status
from rest_framework.response import Response


STATUS_BY_CODE = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "consistency": status.HTTP_409_CONFLICT,
    "invalid_credentials": status.HTTP_401_UNAUTHORIZED,
}


def failure_response(result) -> Response:
    """Response for a failed CommandResult: {"detail": reason}."""
    return Response(
        {"detail": result.error},
        status=STATUS_BY_CODE.get(result.code, status.HTTP_400_BAD_REQUEST),
    )
