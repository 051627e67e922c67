from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone

REQUEST_ID_HEADER = "X-Request-ID"

# Attributes copied from ``extra=`` into the JSON payload when present.
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "remote_addr",
    "user_id",
    "company_id",
    "location_id",
    "reason",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, carrying tenant and request context."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (field, getattr(record, field))
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _request_context(request) -> dict[str, str | None]:
    user = getattr(request, "user", None)
    if user is None or not getattr(user, "is_authenticated", False):
        return {"user_id": None, "company_id": None}
    company_id = getattr(user, "company_id", None)
    return {"user_id": str(user.id), "company_id": str(company_id) if company_id else None}


class RequestLogMiddleware:
    """Propagate ``X-Request-ID`` and write one ``request_completed`` line per request.

    Server errors are logged at ERROR so they surface next to the handler's
    stack trace.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.logger = logging.getLogger("api.request")

    def __call__(self, request):
        started = time.perf_counter()
        request.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        response = self.get_response(request)

        level = logging.ERROR if response.status_code >= 500 else logging.INFO
        self.logger.log(
            level,
            "request_completed",
            extra={
                "request_id": request.request_id,
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "remote_addr": request.META.get("REMOTE_ADDR"),
                "location_id": request.headers.get("X-Location-ID"),
                **_request_context(request),
            },
        )
        response[REQUEST_ID_HEADER] = request.request_id
        return response
