from django.test import TestCase
from rest_framework.test import APIClient

from common.exceptions import InvalidStateTransition
from core.models import Company, Location, User
from inventory import services
from inventory.models import InventoryItem, InventoryTransfer


class InventoryTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(name="Stock Co")
        self.other_company = Company.objects.create(name="Other Stock Co")
        self.main = Location.objects.create(company=self.company, name="Main Street")
        self.annex = Location.objects.create(company=self.company, name="Annex")
        self.foreign_location = Location.objects.create(company=self.other_company, name="Far Away")
        self.manager = User.objects.create_user(
            email="manager@stock.test",
            password="pass12345",
            company=self.company,
            role=User.Role.MANAGER,
            default_location=self.main,
        )
        self.technician = User.objects.create_user(
            email="tech@stock.test", password="pass12345", company=self.company, role=User.Role.TECHNICIAN
        )
        self.outsider = User.objects.create_user(
            email="manager@other.test", password="pass12345", company=self.other_company, role=User.Role.MANAGER
        )
        self.screen = InventoryItem.objects.create(
            company=self.company,
            location=self.main,
            sku="SCR-13",
            name="iPhone 13 screen",
            category="Screens",
            quantity=10,
            reorder_level=3,
            unit_cost="40.00",
            selling_price="120.00",
        )

    def create_transfer(self, quantity=4, **extra):
        return InventoryTransfer.objects.create(
            company=self.company,
            inventory_item=self.screen,
            from_location=self.main,
            to_location=self.annex,
            quantity=quantity,
            created_by=self.manager,
            **extra,
        )


class InventoryItemApiTests(InventoryTestCase):
    def test_list_filters_by_location_and_low_stock(self):
        InventoryItem.objects.create(
            company=self.company, location=self.annex, sku="BAT-1", name="Battery", quantity=1, reorder_level=5
        )
        self.client.force_authenticate(user=self.technician)

        at_main = self.client.get("/api/v1/inventory/", HTTP_X_LOCATION_ID=str(self.main.id)).json()["data"]
        low = self.client.get("/api/v1/inventory/", {"lowStock": "true"}).json()["data"]

        self.assertEqual([row["sku"] for row in at_main], ["SCR-13"])
        self.assertEqual([row["sku"] for row in low], ["BAT-1"])
        self.assertTrue(low[0]["isLowStock"])

    def test_manager_creates_item_at_requested_location(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(
            "/api/v1/inventory/",
            {"sku": "CAM-1", "name": "Camera module", "quantity": 2, "reorderLevel": 1},
            format="json",
            HTTP_X_LOCATION_ID=str(self.annex.id),
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["locationId"], str(self.annex.id))

    def test_duplicate_sku_at_location_is_rejected(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(
            "/api/v1/inventory/",
            {"sku": "SCR-13", "name": "Duplicate", "locationId": str(self.main.id)},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("sku", response.json()["error"]["errors"])

    def test_technician_cannot_create_items(self):
        self.client.force_authenticate(user=self.technician)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.post("/api/v1/inventory/", {"sku": "X", "name": "X"}, format="json")

        self.assertEqual(response.status_code, 403)

    def test_soft_deleted_item_disappears(self):
        self.client.force_authenticate(user=self.manager)

        self.assertEqual(self.client.delete(f"/api/v1/inventory/{self.screen.id}/").status_code, 200)
        self.assertEqual(self.client.get(f"/api/v1/inventory/{self.screen.id}/").status_code, 404)


class TransferCreateTests(InventoryTestCase):
    def payload(self, **overrides):
        data = {
            "inventoryItemId": str(self.screen.id),
            "fromLocation": str(self.main.id),
            "toLocation": str(self.annex.id),
            "quantity": 4,
            "notes": "Restock annex",
        }
        data.update(overrides)
        return data

    def test_create_records_pending_transfer_without_moving_stock(self):
        self.client.force_authenticate(user=self.manager)

        with self.assertLogs("inventory.transfers", level="INFO"):
            response = self.client.post("/api/v1/inventory-transfers/", self.payload(), format="json")

        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["createdBy"], str(self.manager.id))
        self.screen.refresh_from_db()
        self.assertEqual(self.screen.quantity, 10)

    def test_same_source_and_destination_is_rejected(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(
            "/api/v1/inventory-transfers/", self.payload(toLocation=str(self.main.id)), format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertFalse(InventoryTransfer.objects.exists())

    def test_non_positive_quantity_is_rejected(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post("/api/v1/inventory-transfers/", self.payload(quantity=0), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("quantity", response.json()["error"]["errors"])

    def test_location_of_another_company_is_not_found(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(
            "/api/v1/inventory-transfers/", self.payload(toLocation=str(self.foreign_location.id)), format="json"
        )

        self.assertEqual(response.status_code, 404)

    def test_item_must_live_at_source_location(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(
            "/api/v1/inventory-transfers/",
            self.payload(fromLocation=str(self.annex.id), toLocation=str(self.main.id)),
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("inventoryItemId", response.json()["error"]["errors"])

    def test_technician_cannot_create_transfer(self):
        self.client.force_authenticate(user=self.technician)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.post(
                "/api/v1/inventory-transfers/",
                self.payload(),
                format="json",
                HTTP_X_LOCATION_ID=str(self.main.id),
            )

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in line for line in cm.output))

    def test_create_without_any_location_context_is_rejected(self):
        self.manager.default_location = None
        self.manager.save()
        self.client.force_authenticate(user=self.manager)

        response = self.client.post("/api/v1/inventory-transfers/", self.payload(), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Location context is required.")


class TransferCompletionTests(InventoryTestCase):
    def test_complete_moves_stock_and_creates_destination_item(self):
        transfer = self.create_transfer(quantity=4)
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["status"], "completed")
        self.assertIsNotNone(response.json()["data"]["completedAt"])
        self.screen.refresh_from_db()
        self.assertEqual(self.screen.quantity, 6)
        destination = InventoryItem.objects.get(company=self.company, location=self.annex, sku="SCR-13")
        self.assertEqual(destination.quantity, 4)
        self.assertEqual(destination.name, "iPhone 13 screen")
        self.assertEqual(destination.reorder_level, 3)

    def test_complete_adds_to_existing_destination_item(self):
        existing = InventoryItem.objects.create(
            company=self.company, location=self.annex, sku="SCR-13", name="iPhone 13 screen", quantity=2
        )
        transfer = self.create_transfer(quantity=5)
        self.client.force_authenticate(user=self.manager)

        self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        existing.refresh_from_db()
        self.assertEqual(existing.quantity, 7)
        self.assertEqual(InventoryItem.objects.filter(location=self.annex, sku="SCR-13").count(), 1)

    def test_insufficient_stock_keeps_transfer_pending(self):
        transfer = self.create_transfer(quantity=25)
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        self.assertEqual(response.status_code, 409)
        self.assertFalse(response.json()["success"])
        transfer.refresh_from_db()
        self.screen.refresh_from_db()
        self.assertEqual(transfer.status, InventoryTransfer.Status.PENDING)
        self.assertEqual(self.screen.quantity, 10)
        self.assertFalse(InventoryItem.objects.filter(location=self.annex).exists())

    def test_second_complete_is_rejected(self):
        transfer = self.create_transfer(quantity=4)
        self.client.force_authenticate(user=self.manager)

        first = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")
        second = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 409)
        self.screen.refresh_from_db()
        self.assertEqual(self.screen.quantity, 6)

    def test_cancel_is_terminal_and_moves_no_stock(self):
        transfer = self.create_transfer(quantity=4)
        self.client.force_authenticate(user=self.manager)

        cancelled = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/cancel/")
        completed = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["data"]["status"], "cancelled")
        self.assertEqual(completed.status_code, 409)
        self.screen.refresh_from_db()
        self.assertEqual(self.screen.quantity, 10)

    def test_transfer_of_another_company_is_not_found(self):
        transfer = self.create_transfer(quantity=4)
        self.client.force_authenticate(user=self.outsider)

        response = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        self.assertEqual(response.status_code, 404)
        transfer.refresh_from_db()
        self.assertEqual(transfer.status, InventoryTransfer.Status.PENDING)

    def test_technician_can_list_but_not_complete(self):
        transfer = self.create_transfer(quantity=4)
        self.client.force_authenticate(user=self.technician)

        listed = self.client.get("/api/v1/inventory-transfers/", {"status": "pending"})
        with self.assertLogs("security.authorization", level="WARNING"):
            denied = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        self.assertEqual([row["id"] for row in listed.json()["data"]], [str(transfer.id)])
        self.assertEqual(denied.status_code, 403)

    def test_soft_deleted_source_cannot_complete(self):
        transfer = self.create_transfer(quantity=4)
        self.client.force_authenticate(user=self.manager)
        self.client.delete(f"/api/v1/inventory/{self.screen.id}/")

        response = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        self.assertEqual(response.status_code, 409)
        transfer.refresh_from_db()
        self.screen.refresh_from_db()
        self.assertEqual(transfer.status, InventoryTransfer.Status.PENDING)
        self.assertEqual(self.screen.quantity, 10)
        self.assertFalse(InventoryItem.objects.filter(location=self.annex).exists())

    def test_source_moved_away_cannot_complete(self):
        transfer = self.create_transfer(quantity=4)
        self.client.force_authenticate(user=self.manager)
        moved = self.client.patch(
            f"/api/v1/inventory/{self.screen.id}/", {"locationId": str(self.annex.id)}, format="json"
        )
        self.assertEqual(moved.status_code, 200)

        response = self.client.post(f"/api/v1/inventory-transfers/{transfer.id}/complete/")

        self.assertEqual(response.status_code, 409)
        transfer.refresh_from_db()
        self.screen.refresh_from_db()
        self.assertEqual(transfer.status, InventoryTransfer.Status.PENDING)
        self.assertEqual((self.screen.location_id, self.screen.quantity), (self.annex.id, 10))


class TransferServiceTests(InventoryTestCase):
    def test_state_is_rechecked_under_the_lock(self):
        transfer = self.create_transfer(quantity=4)
        InventoryTransfer.objects.filter(id=transfer.id).update(status=InventoryTransfer.Status.COMPLETED)

        with self.assertRaises(InvalidStateTransition):
            services.complete_transfer(self.company.id, transfer.id)

        self.screen.refresh_from_db()
        self.assertEqual(self.screen.quantity, 10)

    def test_opposite_transfers_of_one_sku_both_apply(self):
        annex_screen = InventoryItem.objects.create(
            company=self.company, location=self.annex, sku="SCR-13", name="iPhone 13 screen", quantity=5
        )
        outbound = self.create_transfer(quantity=4)
        inbound = InventoryTransfer.objects.create(
            company=self.company,
            inventory_item=annex_screen,
            from_location=self.annex,
            to_location=self.main,
            quantity=2,
            created_by=self.manager,
        )

        services.complete_transfer(self.company.id, outbound.id)
        services.complete_transfer(self.company.id, inbound.id)

        self.screen.refresh_from_db()
        annex_screen.refresh_from_db()
        self.assertEqual((self.screen.quantity, annex_screen.quantity), (8, 7))
        self.assertEqual(InventoryItem.objects.filter(sku="SCR-13", deleted_at__isnull=True).count(), 2)
