from rest_framework.routers import DefaultRouter

from inventory.views import InventoryItemViewSet, InventoryTransferViewSet

router = DefaultRouter()
router.register(r"inventory", InventoryItemViewSet, basename="inventory-item")
router.register(r"inventory-transfers", InventoryTransferViewSet, basename="inventory-transfer")

urlpatterns = router.urls
