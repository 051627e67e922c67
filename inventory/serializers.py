from rest_framework import serializers

from inventory.models import InventoryItem, InventoryTransfer


class InventoryItemSerializer(serializers.ModelSerializer):
    locationId = serializers.UUIDField(source="location_id", read_only=True, allow_null=True)
    reorderLevel = serializers.IntegerField(source="reorder_level", read_only=True)
    unitCost = serializers.DecimalField(source="unit_cost", max_digits=12, decimal_places=2, read_only=True)
    sellingPrice = serializers.DecimalField(source="selling_price", max_digits=12, decimal_places=2, read_only=True)
    isLowStock = serializers.BooleanField(source="is_low_stock", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = InventoryItem
        fields = [
            "id",
            "locationId",
            "sku",
            "name",
            "category",
            "description",
            "quantity",
            "reorderLevel",
            "unitCost",
            "sellingPrice",
            "isLowStock",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields


class InventoryItemWriteSerializer(serializers.Serializer):
    locationId = serializers.UUIDField(source="location_id", required=False, allow_null=True)
    sku = serializers.CharField(max_length=64)
    name = serializers.CharField(max_length=255)
    category = serializers.CharField(max_length=128, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    quantity = serializers.IntegerField(min_value=0, required=False)
    reorderLevel = serializers.IntegerField(source="reorder_level", min_value=0, required=False)
    unitCost = serializers.DecimalField(source="unit_cost", max_digits=12, decimal_places=2, min_value=0, required=False)
    sellingPrice = serializers.DecimalField(
        source="selling_price", max_digits=12, decimal_places=2, min_value=0, required=False
    )


class InventoryItemSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = InventoryItem
        fields = ["id", "sku", "name"]
        read_only_fields = fields


class InventoryTransferSerializer(serializers.ModelSerializer):
    inventoryItemId = serializers.UUIDField(source="inventory_item_id", read_only=True)
    inventoryItem = InventoryItemSummarySerializer(source="inventory_item", read_only=True)
    fromLocation = serializers.UUIDField(source="from_location_id", read_only=True)
    fromLocationName = serializers.CharField(source="from_location.name", read_only=True)
    toLocation = serializers.UUIDField(source="to_location_id", read_only=True)
    toLocationName = serializers.CharField(source="to_location.name", read_only=True)
    createdBy = serializers.UUIDField(source="created_by_id", read_only=True, allow_null=True)
    completedAt = serializers.DateTimeField(source="completed_at", read_only=True, allow_null=True)
    cancelledAt = serializers.DateTimeField(source="cancelled_at", read_only=True, allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = InventoryTransfer
        fields = [
            "id",
            "inventoryItemId",
            "inventoryItem",
            "fromLocation",
            "fromLocationName",
            "toLocation",
            "toLocationName",
            "quantity",
            "status",
            "notes",
            "createdBy",
            "completedAt",
            "cancelledAt",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields


class InventoryTransferCreateSerializer(serializers.Serializer):
    inventoryItemId = serializers.UUIDField(source="inventory_item_id")
    fromLocation = serializers.UUIDField(source="from_location_id")
    toLocation = serializers.UUIDField(source="to_location_id")
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True)
