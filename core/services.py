import logging

from django.contrib.auth import authenticate
from django.db import IntegrityError, transaction
from rest_framework.exceptions import AuthenticationFailed, ValidationError

from common.authentication import issue_token_pair, verify_refresh_token
from common.utils import get_scoped_object
from core.models import Company, Location, User

logger = logging.getLogger(__name__)


def _normalize_email(email):
    return (email or "").strip().lower()


def _ensure_email_available(email, exclude_id=None):
    qs = User.objects.filter(email__iexact=email)
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    if qs.exists():
        raise ValidationError({"email": ["A user with this email already exists."]})


def _resolve_location(company_id, location_id):
    if location_id is None:
        return None
    return get_scoped_object(Location.objects.filter(company_id=company_id), location_id, "Location not found")


def register_company(*, email, password, first_name, last_name, company_name=""):
    """Create a company together with its first user, who is always an admin."""
    email = _normalize_email(email)
    _ensure_email_available(email)
    company_name = company_name or f"{first_name} {last_name}".strip()

    try:
        with transaction.atomic():
            company = Company.objects.create(name=company_name)
            user = User.objects.create_user(
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
                company=company,
                role=User.Role.ADMIN,
            )
    except IntegrityError:
        raise ValidationError({"email": ["A user with this email already exists."]})

    logger.info("company_registered", extra={"user_id": str(user.id), "company_id": str(company.id)})
    return {"user": user, **issue_token_pair(user)}


def login(*, email, password, request=None):
    user = authenticate(request, email=_normalize_email(email), password=password)
    if user is None:
        raise AuthenticationFailed("Invalid email or password")
    return {"user": user, **issue_token_pair(user)}


def refresh_session(refresh_token):
    user = verify_refresh_token(refresh_token)
    if user is None:
        raise AuthenticationFailed("Invalid refresh token")
    return {"user": user, **issue_token_pair(user)}


def list_users(company_id, role=None):
    qs = User.objects.filter(company_id=company_id).order_by("first_name", "last_name", "email")
    if role:
        qs = qs.filter(role=role)
    return qs


def list_technicians(company_id):
    return list_users(company_id, role=User.Role.TECHNICIAN).filter(is_active=True)


def get_user(company_id, user_id):
    return get_scoped_object(User.objects.filter(company_id=company_id), user_id, "User not found")


def create_user(company_id, data):
    email = _normalize_email(data["email"])
    _ensure_email_available(email)
    return User.objects.create_user(
        email=email,
        password=data["password"],
        first_name=data.get("first_name", ""),
        last_name=data.get("last_name", ""),
        role=data.get("role", User.Role.TECHNICIAN),
        company_id=company_id,
        default_location=_resolve_location(company_id, data.get("default_location_id")),
    )


def update_user(company_id, user_id, data):
    user = get_user(company_id, user_id)
    for field in ("first_name", "last_name", "role", "is_active"):
        if field in data:
            setattr(user, field, data[field])
    if "email" in data:
        email = _normalize_email(data["email"])
        _ensure_email_available(email, exclude_id=user.id)
        user.email = email
    if "default_location_id" in data:
        user.default_location = _resolve_location(company_id, data["default_location_id"])
    user.save()
    return user


def deactivate_user(company_id, user_id, acting_user):
    user = get_user(company_id, user_id)
    if user.id == acting_user.id:
        raise ValidationError({"id": ["You cannot deactivate your own account."]})
    user.is_active = False
    user.save(update_fields=["is_active", "updated_at"])
    return user


def list_locations(company_id):
    return Location.objects.filter(company_id=company_id, is_active=True).order_by("name")


def create_location(company_id, data):
    if Location.objects.filter(company_id=company_id, name__iexact=data["name"]).exists():
        raise ValidationError({"name": ["A location with this name already exists."]})
    return Location.objects.create(company_id=company_id, **data)
