"""HTTP client used by the browser front end and by scripts talking to the API.

Credentials never live in module state: every call receives the
``SessionContext`` it acts for, so two sessions in one process cannot see each
other's tokens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import requests

logger = logging.getLogger("client.api")

API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT = 10
AUTH_FAILURE_STATUSES = frozenset({401, 403})


def normalize_base_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    return base if base.endswith(API_PREFIX) else f"{base}{API_PREFIX}"


def _compact(params: dict[str, Any]) -> dict[str, str]:
    return {key: str(value) for key, value in params.items() if value is not None and value != ""}


@dataclass
class SessionContext:
    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def store(self, payload: dict[str, Any]) -> None:
        self.access_token = payload["accessToken"]
        self.refresh_token = payload.get("refreshToken", self.refresh_token)

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None


@dataclass
class ApiResponse:
    success: bool
    data: Any = None
    error: dict[str, Any] | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ApiResponse":
        return cls(success=bool(payload.get("success")), data=payload.get("data"), error=payload.get("error"))


class ApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None, errors: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or {}


class ApiClient:
    """Thin wrapper over ``requests.Session`` speaking the API envelope.

    A 401 or 403 on an authenticated call clears the caller's context and runs
    ``on_auth_failure`` (typically a redirect to the login page) before
    raising ``ApiError``.
    """

    def __init__(
        self,
        base_url: str,
        on_auth_failure: Callable[[int], None] | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = normalize_base_url(base_url)
        self.on_auth_failure = on_auth_failure
        self.session = session or requests.Session()
        self.timeout = timeout

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        context: SessionContext | None = None,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        location_id: str | None = None,
        redirect_on_auth_failure: bool = True,
    ) -> ApiResponse:
        headers = {"Content-Type": "application/json"}
        if context is not None and context.access_token:
            headers["Authorization"] = f"Bearer {context.access_token}"
        if location_id:
            headers["X-Location-ID"] = str(location_id)

        response = self.session.request(
            method,
            self.url(path),
            params=_compact(params or {}),
            json=json,
            headers=headers,
            timeout=self.timeout,
        )
        payload = self._decode(response)
        error = payload.get("error") or {}
        message = error.get("message") or payload.get("message") or f"HTTP {response.status_code}"

        if response.status_code in AUTH_FAILURE_STATUSES and redirect_on_auth_failure:
            logger.info("auth_failure status=%s path=%s", response.status_code, path)
            if context is not None:
                context.clear()
            if self.on_auth_failure is not None:
                self.on_auth_failure(response.status_code)
            raise ApiError(message, response.status_code, error.get("errors"))

        result = ApiResponse.from_payload(payload)
        if not response.ok or not result.success:
            raise ApiError(message, response.status_code, error.get("errors"))
        return result

    @staticmethod
    def _decode(response: requests.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    # Auth

    def login(self, context: SessionContext, email: str, password: str) -> dict[str, Any]:
        result = self.request(
            "POST",
            "auth/login/",
            json={"email": email, "password": password},
            redirect_on_auth_failure=False,
        )
        context.store(result.data)
        return result.data

    def register(
        self,
        context: SessionContext,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        company_name: str | None = None,
    ) -> dict[str, Any]:
        body = {"email": email, "password": password, "firstName": first_name, "lastName": last_name}
        if company_name:
            body["companyName"] = company_name
        result = self.request("POST", "auth/register/", json=body, redirect_on_auth_failure=False)
        context.store(result.data)
        return result.data

    def refresh(self, context: SessionContext) -> dict[str, Any]:
        if not context.refresh_token:
            raise ApiError("No refresh token available")
        result = self.request("POST", "auth/refresh/", context, json={"refreshToken": context.refresh_token})
        context.store(result.data)
        return result.data

    def get_current_user(self, context: SessionContext) -> dict[str, Any]:
        return self.request("GET", "auth/me/", context).data

    def logout(self, context: SessionContext) -> None:
        context.clear()

    def get_technicians(self, context: SessionContext) -> ApiResponse:
        return self.request("GET", "users/technicians/", context)

    # Tickets

    def list_tickets(self, context: SessionContext, customer_id: str | None = None, status: str | None = None) -> ApiResponse:
        return self.request("GET", "tickets/", context, params={"customerId": customer_id, "status": status})

    def get_ticket(self, context: SessionContext, ticket_id: str) -> ApiResponse:
        return self.request("GET", f"tickets/{ticket_id}/", context)

    def create_ticket(self, context: SessionContext, ticket: dict[str, Any]) -> ApiResponse:
        return self.request("POST", "tickets/", context, json=ticket)

    def update_ticket(self, context: SessionContext, ticket_id: str, changes: dict[str, Any]) -> ApiResponse:
        return self.request("PUT", f"tickets/{ticket_id}/", context, json=changes)

    def delete_ticket(self, context: SessionContext, ticket_id: str) -> ApiResponse:
        return self.request("DELETE", f"tickets/{ticket_id}/", context)

    # Inventory transfers

    def list_transfers(
        self,
        context: SessionContext,
        status: str | None = None,
        from_location: str | None = None,
        to_location: str | None = None,
    ) -> ApiResponse:
        params = {"status": status, "fromLocation": from_location, "toLocation": to_location}
        return self.request("GET", "inventory-transfers/", context, params=params)

    def get_transfer(self, context: SessionContext, transfer_id: str) -> ApiResponse:
        return self.request("GET", f"inventory-transfers/{transfer_id}/", context)

    def create_transfer(
        self, context: SessionContext, transfer: dict[str, Any], location_id: str | None = None
    ) -> ApiResponse:
        return self.request("POST", "inventory-transfers/", context, json=transfer, location_id=location_id)

    def complete_transfer(self, context: SessionContext, transfer_id: str) -> ApiResponse:
        return self.request("POST", f"inventory-transfers/{transfer_id}/complete/", context)

    def cancel_transfer(self, context: SessionContext, transfer_id: str) -> ApiResponse:
        return self.request("POST", f"inventory-transfers/{transfer_id}/cancel/", context)
