import uuid

from django.utils import timezone
from rest_framework.exceptions import NotFound


def parse_uuid(value):
    if value in (None, ""):
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def get_scoped_object(queryset, object_id, message="Not found"):
    """Fetch ``object_id`` from an already tenant-filtered queryset.

    Malformed ids, unknown ids and ids owned by another company all raise the
    same ``NotFound``.
    """
    pk = parse_uuid(object_id)
    if pk is None:
        raise NotFound(message)
    instance = queryset.filter(pk=pk).first()
    if instance is None:
        raise NotFound(message)
    return instance


def soft_delete(instance):
    instance.deleted_at = timezone.now()
    instance.save(update_fields=["deleted_at", "updated_at"])
    return instance


def next_serial_number(queryset, field, prefix, width=3):
    """Next ``<prefix>NNN`` value for ``field`` among rows already in ``queryset``."""
    existing = queryset.filter(**{f"{field}__startswith": prefix}).values_list(field, flat=True)
    serials = [int(str(number).rsplit("-", 1)[-1]) for number in existing if str(number).rsplit("-", 1)[-1].isdigit()]
    serial = max(serials + [0]) + 1
    return f"{prefix}{serial:0{width}d}"


def daily_prefix(code):
    return timezone.now().strftime(f"{code}-%Y%m%d-")
