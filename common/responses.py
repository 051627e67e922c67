from __future__ import annotations

from typing import Any

from rest_framework import status
from rest_framework.response import Response


def success_response(data: Any = None, *, status_code: int = status.HTTP_200_OK) -> Response:
    return Response({"success": True, "data": data}, status=status_code)


def created_response(data: Any = None) -> Response:
    return success_response(data, status_code=status.HTTP_201_CREATED)
