import logging
from collections.abc import Mapping

from rest_framework.permissions import BasePermission

from common.exceptions import LocationContextRequired, MissingCredentials, TenantContextRequired
from common.utils import get_scoped_object
from core.models import Location, User

logger = logging.getLogger("security.authorization")

ALL_ROLES = frozenset({User.Role.ADMIN, User.Role.MANAGER, User.Role.TECHNICIAN})
MANAGEMENT_ROLES = frozenset({User.Role.ADMIN, User.Role.MANAGER})
ADMIN_ONLY = frozenset({User.Role.ADMIN})

ROLE_CAPABILITY_MATRIX = {
    "tickets.view": ALL_ROLES,
    "tickets.manage": ALL_ROLES,
    "customers.view": ALL_ROLES,
    "customers.manage": ALL_ROLES,
    "users.view": MANAGEMENT_ROLES,
    "users.technicians.view": ALL_ROLES,
    "users.manage": ADMIN_ONLY,
    "locations.view": ALL_ROLES,
    "locations.manage": ADMIN_ONLY,
    "inventory.view": ALL_ROLES,
    "inventory.manage": MANAGEMENT_ROLES,
    "transfers.view": ALL_ROLES,
    "transfers.create": MANAGEMENT_ROLES,
    "transfers.complete": MANAGEMENT_ROLES,
    "transfers.cancel": MANAGEMENT_ROLES,
    "invoices.view": ALL_ROLES,
    "invoices.manage": MANAGEMENT_ROLES,
    "reporting.dashboard.view": ALL_ROLES,
    "reporting.revenue.view": MANAGEMENT_ROLES,
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    return getattr(user, "role", None)


def user_has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles:
        return False
    return get_user_role(user) in allowed_roles


def _action_key(request, view):
    return getattr(view, "action", None) or request.method.lower()


class IsTokenAuthenticated(BasePermission):
    """First gate: a verified bearer token must be present."""

    def has_permission(self, request, view):
        user = request.user
        if user and user.is_authenticated:
            return True
        raise MissingCredentials()


class HasTenantContext(BasePermission):
    """Second gate: the caller must belong to an active company.

    Sets ``request.company_id``; every service call downstream is filtered by it.
    """

    def has_permission(self, request, view):
        company = getattr(request.user, "company", None)
        if company is None or not company.is_active:
            logger.warning(
                "tenant_context_missing user=%s path=%s",
                getattr(request.user, "email", "anonymous"),
                request.path,
                extra={"reason": "tenant_context_missing"},
            )
            raise TenantContextRequired()
        request.company_id = company.id
        return True


class HasLocationContext(BasePermission):
    """Third gate: resolve the optional location scope of the request.

    The location comes from the ``X-Location-ID`` header, then a ``locationId``
    query or body parameter. Actions listed in ``view.location_required_actions``
    fall back to the user's default location and fail with 400 without one.
    """

    def has_permission(self, request, view):
        required = _action_key(request, view) in getattr(view, "location_required_actions", ())
        location_id = self._requested_location_id(request)
        if not location_id and required:
            location_id = getattr(request.user, "default_location_id", None)

        if not location_id:
            if required:
                raise LocationContextRequired()
            request.location_id = None
            return True

        location = get_scoped_object(
            Location.objects.filter(company_id=request.company_id, is_active=True),
            location_id,
            "Location not found",
        )
        request.location_id = location.id
        return True

    @staticmethod
    def _requested_location_id(request):
        location_id = request.headers.get("X-Location-ID") or request.query_params.get("locationId")
        if not location_id and isinstance(request.data, Mapping):
            location_id = request.data.get("locationId")
        return location_id


class RoleCapabilityPermission(BasePermission):
    """Permission class that validates role capability by action/method and logs denied attempts."""

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = _action_key(request, view)
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        allowed = user_has_capability(request.user, capability)
        if not allowed:
            logger.warning(
                "permission_denied capability=%s user=%s role=%s method=%s path=%s view=%s action=%s",
                capability,
                getattr(request.user, "email", "anonymous"),
                get_user_role(request.user),
                request.method,
                request.path,
                view.__class__.__name__,
                action_key,
                extra={
                    "user_id": str(request.user.id),
                    "company_id": getattr(request, "company_id", None),
                    "reason": "permission_denied",
                },
            )
        return allowed


TENANT_PERMISSION_CLASSES = [
    IsTokenAuthenticated,
    HasTenantContext,
    HasLocationContext,
    RoleCapabilityPermission,
]
