from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    NotAuthenticated,
    Throttled,
    ValidationError,
)
from rest_framework.response import Response

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."
VALIDATION_FAILED_MESSAGE = "Validation failed"


class MissingCredentials(NotAuthenticated):
    """No bearer token was supplied."""

    default_detail = "Invalid token"
    default_code = "missing_credentials"


class InvalidCredentials(APIException):
    """A bearer token was supplied but did not verify.

    Subclasses APIException rather than AuthenticationFailed so DRF keeps the 403.
    """

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Unauthorized"
    default_code = "invalid_credentials"


class TenantContextRequired(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "User is not associated with an active company."
    default_code = "tenant_context_required"


class LocationContextRequired(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Location context is required."
    default_code = "location_context_required"


class InvalidStateTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Invalid state transition."
    default_code = "invalid_state_transition"


class InsufficientStock(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Insufficient stock at the source location."
    default_code = "insufficient_stock"


class SourceItemUnavailable(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Inventory item is no longer stocked at the source location."
    default_code = "source_item_unavailable"


def build_error_envelope(*, message: str, errors: Any = None) -> dict[str, Any]:
    error = {"message": message}
    if errors:
        error["errors"] = errors
    return {
        "success": False,
        "message": message,
        "error": error,
    }


def error_response(
    *,
    message: str,
    errors: Any = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    return Response(build_error_envelope(message=message, errors=errors), status=status_code)


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    # rest_framework.views loads the authentication classes, which import this module.
    from rest_framework.views import exception_handler as drf_exception_handler

    response = drf_exception_handler(exc, context)

    if response is None:
        view_name = context.get("view").__class__.__name__ if context.get("view") else "unknown"
        logger.exception("Unhandled API exception in %s", view_name)
        return error_response(
            message=str(exc) or GENERIC_SERVER_ERROR_MESSAGE,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    errors = _normalize_errors(response.data) if isinstance(exc, ValidationError) else None
    response.data = build_error_envelope(
        message=_build_message(exc, response.data),
        errors=errors,
    )
    return response


def _build_message(exc: Exception, data: Any) -> str:
    if isinstance(exc, ValidationError):
        return VALIDATION_FAILED_MESSAGE

    if isinstance(exc, NotAuthenticated):
        return MissingCredentials.default_detail

    detail = None
    if isinstance(data, Mapping):
        detail = data.get("detail")
    elif isinstance(data, str):
        detail = data

    if detail:
        return str(detail)

    if isinstance(exc, Throttled):
        return "Request was throttled."

    if isinstance(exc, APIException):
        return str(getattr(exc, "detail", "Request failed."))

    return GENERIC_SERVER_ERROR_MESSAGE


def _normalize_errors(data: Any) -> Any:
    if isinstance(data, Mapping):
        if set(data.keys()) == {"detail"}:
            return None
        return data

    if isinstance(data, Sequence) and not isinstance(data, str):
        return {"non_field_errors": list(data)}

    return None
