import uuid

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from core.models import Company, Location


class InventoryItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT, related_name="inventory_items")
    location = models.ForeignKey(Location, on_delete=models.PROTECT, null=True, blank=True, related_name="inventory_items")
    sku = models.CharField(max_length=64)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=128, blank=True, default="")
    description = models.TextField(blank=True, default="")
    quantity = models.IntegerField(default=0)
    reorder_level = models.IntegerField(default=0)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["company", "location", "deleted_at"], name="inv_item_company_loc_idx"),
            models.Index(fields=["company", "sku"], name="inv_item_company_sku_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "location", "sku"],
                condition=Q(deleted_at__isnull=True),
                name="uniq_live_item_sku_per_location",
            ),
            models.CheckConstraint(condition=Q(quantity__gte=0), name="inventory_item_quantity_non_negative"),
        ]

    @property
    def is_low_stock(self):
        return self.quantity < self.reorder_level


class InventoryTransfer(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT, related_name="inventory_transfers")
    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name="transfers")
    from_location = models.ForeignKey(Location, on_delete=models.PROTECT, related_name="outgoing_transfers")
    to_location = models.ForeignKey(Location, on_delete=models.PROTECT, related_name="incoming_transfers")
    quantity = models.PositiveIntegerField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="inventory_transfers",
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["company", "status", "created_at"], name="inv_xfer_company_status_idx"),
            models.Index(fields=["from_location", "to_location"], name="inv_xfer_locations_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=~Q(from_location=F("to_location")), name="inventory_transfer_distinct_locations"),
        ]
