from rest_framework import viewsets
from rest_framework.decorators import action

from common.permissions import TENANT_PERMISSION_CLASSES
from common.responses import created_response, success_response
from inventory import services
from inventory.serializers import (
    InventoryItemSerializer,
    InventoryItemWriteSerializer,
    InventoryTransferCreateSerializer,
    InventoryTransferSerializer,
)

TRUTHY = {"1", "true", "yes", "on"}


class InventoryItemViewSet(viewsets.ViewSet):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "create": "inventory.manage",
        "update": "inventory.manage",
        "partial_update": "inventory.manage",
        "destroy": "inventory.manage",
    }

    def list(self, request):
        items = services.list_items(
            request.company_id,
            location_id=request.location_id,
            low_stock=str(request.query_params.get("lowStock", "")).lower() in TRUTHY,
            search=request.query_params.get("search"),
        )
        return success_response(InventoryItemSerializer(items, many=True).data)

    def retrieve(self, request, pk=None):
        return success_response(InventoryItemSerializer(services.get_item(request.company_id, pk)).data)

    def create(self, request):
        serializer = InventoryItemWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item = services.create_item(request.company_id, serializer.validated_data, location_id=request.location_id)
        return created_response(InventoryItemSerializer(item).data)

    def update(self, request, pk=None):
        serializer = InventoryItemWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        item = services.update_item(request.company_id, pk, serializer.validated_data)
        return success_response(InventoryItemSerializer(item).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)

    def destroy(self, request, pk=None):
        services.delete_item(request.company_id, pk)
        return success_response({"message": "Inventory item deleted successfully"})


class InventoryTransferViewSet(viewsets.ViewSet):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {
        "list": "transfers.view",
        "retrieve": "transfers.view",
        "create": "transfers.create",
        "complete": "transfers.complete",
        "cancel": "transfers.cancel",
    }
    location_required_actions = ("create",)

    def list(self, request):
        transfers = services.list_transfers(
            request.company_id,
            status=request.query_params.get("status"),
            from_location=request.query_params.get("fromLocation"),
            to_location=request.query_params.get("toLocation"),
        )
        return success_response(InventoryTransferSerializer(transfers, many=True).data)

    def retrieve(self, request, pk=None):
        return success_response(InventoryTransferSerializer(services.get_transfer(request.company_id, pk)).data)

    def create(self, request):
        serializer = InventoryTransferCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        transfer = services.create_transfer(request.company_id, request.user, serializer.validated_data)
        return created_response(InventoryTransferSerializer(transfer).data)

    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        transfer = services.complete_transfer(request.company_id, pk)
        return success_response(InventoryTransferSerializer(services.get_transfer(request.company_id, transfer.id)).data)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        transfer = services.cancel_transfer(request.company_id, pk)
        return success_response(InventoryTransferSerializer(services.get_transfer(request.company_id, transfer.id)).data)
