import logging

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from common.exceptions import InsufficientStock, InvalidStateTransition, SourceItemUnavailable
from common.utils import get_scoped_object, parse_uuid, soft_delete
from core.models import Location
from inventory.models import InventoryItem, InventoryTransfer

logger = logging.getLogger("inventory.transfers")

CATALOGUE_FIELDS = ("name", "category", "description", "unit_cost", "selling_price", "reorder_level")


def live_items(company_id):
    return InventoryItem.objects.filter(company_id=company_id, deleted_at__isnull=True)


def list_items(company_id, location_id=None, low_stock=False, search=None):
    qs = live_items(company_id)
    if location_id:
        qs = qs.filter(location_id=location_id)
    if low_stock:
        qs = qs.filter(quantity__lt=F("reorder_level"))
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(sku__icontains=search) | Q(category__icontains=search))
    return qs.order_by("name", "sku")


def get_item(company_id, item_id):
    return get_scoped_object(live_items(company_id), item_id, "Inventory item not found")


def _company_location(company_id, location_id):
    return get_scoped_object(Location.objects.filter(company_id=company_id), location_id, "Location not found")


def _ensure_unique_sku(company_id, location_id, sku, exclude_id=None):
    qs = live_items(company_id).filter(location_id=location_id, sku=sku)
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    if qs.exists():
        raise ValidationError({"sku": ["An item with this SKU already exists at this location."]})


def create_item(company_id, data, location_id=None):
    data = dict(data)
    location_id = data.pop("location_id", None) or location_id
    if location_id is not None:
        location_id = _company_location(company_id, location_id).id
    _ensure_unique_sku(company_id, location_id, data["sku"])
    return InventoryItem.objects.create(company_id=company_id, location_id=location_id, **data)


def update_item(company_id, item_id, data):
    item = get_item(company_id, item_id)
    data = dict(data)
    if "location_id" in data:
        location_id = data.pop("location_id")
        item.location_id = _company_location(company_id, location_id).id if location_id else None
    for field, value in data.items():
        setattr(item, field, value)
    _ensure_unique_sku(company_id, item.location_id, item.sku, exclude_id=item.id)
    item.save()
    return item


def delete_item(company_id, item_id):
    return soft_delete(get_item(company_id, item_id))


def transfers_for_company(company_id):
    return InventoryTransfer.objects.filter(company_id=company_id)


def list_transfers(company_id, status=None, from_location=None, to_location=None):
    qs = transfers_for_company(company_id).select_related("inventory_item", "from_location", "to_location")
    if status:
        qs = qs.filter(status=status)
    if from_location:
        qs = qs.filter(from_location_id=parse_uuid(from_location))
    if to_location:
        qs = qs.filter(to_location_id=parse_uuid(to_location))
    return qs.order_by("-created_at")


def get_transfer(company_id, transfer_id):
    return get_scoped_object(
        transfers_for_company(company_id).select_related("inventory_item", "from_location", "to_location"),
        transfer_id,
        "Inventory transfer not found",
    )


def create_transfer(company_id, user, data):
    """Record a pending transfer. Stock is untouched until the transfer is completed."""
    if data["from_location_id"] == data["to_location_id"]:
        raise ValidationError({"toLocation": ["Source and destination locations must differ."]})

    from_location = _company_location(company_id, data["from_location_id"])
    to_location = _company_location(company_id, data["to_location_id"])
    item = get_item(company_id, data["inventory_item_id"])
    if item.location_id != from_location.id:
        raise ValidationError({"inventoryItemId": ["Inventory item is not stocked at the source location."]})

    transfer = InventoryTransfer.objects.create(
        company_id=company_id,
        inventory_item=item,
        from_location=from_location,
        to_location=to_location,
        quantity=data["quantity"],
        notes=data.get("notes", ""),
        created_by=user,
    )
    logger.info(
        "transfer_created transfer=%s item=%s quantity=%s",
        transfer.id,
        item.sku,
        transfer.quantity,
        extra={"company_id": str(company_id), "user_id": str(user.id)},
    )
    return transfer


def _lock_pending_transfer(company_id, transfer_id, verb):
    transfer = get_scoped_object(
        transfers_for_company(company_id).select_for_update(), transfer_id, "Inventory transfer not found"
    )
    if transfer.status != InventoryTransfer.Status.PENDING:
        raise InvalidStateTransition(f"Cannot {verb} a transfer that is {transfer.status}.")
    return transfer


def _lock_transfer_items(transfer):
    """Lock the live source row and any live destination row in primary-key order."""
    sku = InventoryItem.objects.filter(pk=transfer.inventory_item_id).values_list("sku", flat=True).first()
    rows = list(
        InventoryItem.objects.select_for_update()
        .filter(company_id=transfer.company_id, deleted_at__isnull=True)
        .filter(
            Q(pk=transfer.inventory_item_id, location_id=transfer.from_location_id)
            | Q(location_id=transfer.to_location_id, sku=sku)
        )
        .order_by("id")
    )
    source = next(
        (
            row
            for row in rows
            if row.pk == transfer.inventory_item_id and row.location_id == transfer.from_location_id
        ),
        None,
    )
    if source is None:
        raise SourceItemUnavailable()
    destination = next(
        (
            row
            for row in rows
            if row.pk != source.pk and row.location_id == transfer.to_location_id and row.sku == source.sku
        ),
        None,
    )
    return source, destination


def _create_destination_item(source, to_location_id):
    return InventoryItem.objects.create(
        company_id=source.company_id,
        location_id=to_location_id,
        sku=source.sku,
        quantity=0,
        **{field: getattr(source, field) for field in CATALOGUE_FIELDS},
    )


def complete_transfer(company_id, transfer_id):
    """Move stock from the source item to the destination location.

    Runs in one transaction with the transfer and both item rows locked; any
    failure leaves the transfer pending and both quantities unchanged. The
    source must still be live and stocked at ``from_location``.
    """
    with transaction.atomic():
        transfer = _lock_pending_transfer(company_id, transfer_id, "complete")
        source, destination = _lock_transfer_items(transfer)
        if source.quantity < transfer.quantity:
            raise InsufficientStock(
                f"Insufficient stock: {source.quantity} available, {transfer.quantity} requested."
            )

        source.quantity -= transfer.quantity
        source.save(update_fields=["quantity", "updated_at"])

        if destination is None:
            destination = _create_destination_item(source, transfer.to_location_id)
        destination.quantity += transfer.quantity
        destination.save(update_fields=["quantity", "updated_at"])

        transfer.status = InventoryTransfer.Status.COMPLETED
        transfer.completed_at = timezone.now()
        transfer.save(update_fields=["status", "completed_at", "updated_at"])

    logger.info(
        "transfer_completed transfer=%s source=%s destination=%s quantity=%s",
        transfer.id,
        source.id,
        destination.id,
        transfer.quantity,
        extra={"company_id": str(company_id)},
    )
    return transfer


def cancel_transfer(company_id, transfer_id):
    with transaction.atomic():
        transfer = _lock_pending_transfer(company_id, transfer_id, "cancel")
        transfer.status = InventoryTransfer.Status.CANCELLED
        transfer.cancelled_at = timezone.now()
        transfer.save(update_fields=["status", "cancelled_at", "updated_at"])

    logger.info("transfer_cancelled transfer=%s", transfer.id, extra={"company_id": str(company_id)})
    return transfer
