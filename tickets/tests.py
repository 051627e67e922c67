from unittest.mock import patch

from django.db import connection
from django.test import TestCase
from django.test.utils import CaptureQueriesContext
from django.utils import timezone
from rest_framework.test import APIClient

from common.authentication import issue_access_token
from core.models import Company, User
from sales.models import Customer
from tickets.models import Ticket


class TicketApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(name="Ticket Co")
        self.other_company = Company.objects.create(name="Other Ticket Co")
        self.technician = User.objects.create_user(
            email="tech@tickets.test",
            password="pass12345",
            company=self.company,
            role=User.Role.TECHNICIAN,
            first_name="Terry",
            last_name="Tech",
        )
        self.customer = Customer.objects.create(company=self.company, first_name="Ada", last_name="Lovelace")
        self.foreign_customer = Customer.objects.create(company=self.other_company, first_name="Eve", last_name="Other")
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_access_token(self.technician)}")

    def make_ticket(self, **overrides):
        values = {
            "company": self.company,
            "customer": self.customer,
            "ticket_number": f"TKT-TEST-{Ticket.objects.count() + 1:03d}",
            "device_type": "Laptop",
            "issue_description": "Does not boot",
        }
        values.update(overrides)
        return Ticket.objects.create(**values)


class TicketAuthTests(TicketApiTestCase):
    def test_missing_token_is_401_invalid_token(self):
        self.client.credentials()

        response = self.client.get("/api/v1/tickets/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Invalid token")

    def test_bad_token_is_403_unauthorized(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer invalid-token")

        with self.assertLogs("security.authentication", level="WARNING"):
            response = self.client.get("/api/v1/tickets/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["message"], "Unauthorized")


class TicketCreateTests(TicketApiTestCase):
    def payload(self, **overrides):
        data = {
            "customerId": str(self.customer.id),
            "deviceType": "Smartphone",
            "deviceBrand": "Apple",
            "deviceModel": "iPhone 13",
            "issueDescription": "Cracked screen",
            "priority": "high",
        }
        data.update(overrides)
        return data

    def test_create_returns_new_ticket(self):
        response = self.client.post("/api/v1/tickets/", self.payload(), format="json")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["status"], "new")
        self.assertEqual(body["data"]["deviceType"], "Smartphone")
        self.assertEqual(body["data"]["priority"], "high")
        expected_prefix = timezone.now().strftime("TKT-%Y%m%d-")
        self.assertEqual(body["data"]["ticketNumber"], f"{expected_prefix}001")

    def test_ticket_numbers_increment_per_company(self):
        first = self.client.post("/api/v1/tickets/", self.payload(), format="json").json()["data"]
        second = self.client.post("/api/v1/tickets/", self.payload(), format="json").json()["data"]

        self.assertTrue(first["ticketNumber"].endswith("-001"))
        self.assertTrue(second["ticketNumber"].endswith("-002"))

    def test_priority_defaults_to_medium(self):
        payload = self.payload()
        del payload["priority"]

        response = self.client.post("/api/v1/tickets/", payload, format="json")

        self.assertEqual(response.json()["data"]["priority"], "medium")

    def test_created_ticket_round_trips(self):
        created = self.client.post(
            "/api/v1/tickets/", self.payload(technicianId=str(self.technician.id)), format="json"
        ).json()["data"]

        fetched = self.client.get(f"/api/v1/tickets/{created['id']}/").json()["data"]

        for key in ("id", "ticketNumber", "status", "deviceType", "deviceBrand", "deviceModel", "issueDescription"):
            self.assertEqual(fetched[key], created[key])
        self.assertEqual(fetched["customer"]["id"], str(self.customer.id))
        self.assertEqual(fetched["technician"]["firstName"], "Terry")

    def test_missing_fields_fail_validation(self):
        response = self.client.post("/api/v1/tickets/", {"deviceType": "Smartphone"}, format="json")

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["message"], "Validation failed")
        self.assertIn("customerId", body["error"]["errors"])
        self.assertIn("issueDescription", body["error"]["errors"])

    def test_customer_of_another_company_is_not_found(self):
        response = self.client.post(
            "/api/v1/tickets/", self.payload(customerId=str(self.foreign_customer.id)), format="json"
        )

        self.assertEqual(response.status_code, 404)
        self.assertFalse(Ticket.objects.exists())

    def test_unexpected_error_is_500_with_message(self):
        with patch("tickets.services.create_ticket", side_effect=RuntimeError("Database error")):
            with self.assertLogs("common.exceptions", level="ERROR"):
                response = self.client.post("/api/v1/tickets/", self.payload(), format="json")

        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["message"], "Database error")


class TicketListTests(TicketApiTestCase):
    def test_list_enriches_customer_and_omits_missing_technician(self):
        self.make_ticket()
        self.make_ticket(technician=self.technician)

        response = self.client.get("/api/v1/tickets/")

        self.assertEqual(response.status_code, 200)
        rows = response.json()["data"]
        self.assertEqual(len(rows), 2)
        for row in rows:
            self.assertEqual(row["customer"]["firstName"], "Ada")
        with_tech = [row for row in rows if row["technicianId"]]
        without_tech = [row for row in rows if not row["technicianId"]]
        self.assertEqual(with_tech[0]["technician"]["id"], str(self.technician.id))
        self.assertNotIn("technician", without_tech[0])

    def test_deleted_customer_becomes_null(self):
        self.make_ticket()
        self.customer.deleted_at = timezone.now()
        self.customer.save()

        rows = self.client.get("/api/v1/tickets/").json()["data"]

        self.assertIsNone(rows[0]["customer"])

    def test_query_count_does_not_grow_with_ticket_count(self):
        self.make_ticket(technician=self.technician)
        with CaptureQueriesContext(connection) as small:
            self.client.get("/api/v1/tickets/")

        other_customer = Customer.objects.create(company=self.company, first_name="Grace", last_name="Hopper")
        for index in range(4):
            self.make_ticket(customer=other_customer if index % 2 else self.customer, technician=self.technician)
        with CaptureQueriesContext(connection) as large:
            response = self.client.get("/api/v1/tickets/")

        self.assertEqual(len(response.json()["data"]), 5)
        self.assertEqual(len(large.captured_queries), len(small.captured_queries))

    def test_filters_by_customer_and_status(self):
        other_customer = Customer.objects.create(company=self.company, first_name="Grace", last_name="Hopper")
        self.make_ticket(status=Ticket.Status.COMPLETED, completed_date=timezone.now())
        self.make_ticket(customer=other_customer)

        by_customer = self.client.get("/api/v1/tickets/", {"customerId": str(other_customer.id)}).json()["data"]
        by_status = self.client.get("/api/v1/tickets/", {"status": "completed"}).json()["data"]

        self.assertEqual([row["customerId"] for row in by_customer], [str(other_customer.id)])
        self.assertEqual([row["status"] for row in by_status], ["completed"])

    def test_other_company_tickets_are_invisible(self):
        foreign = self.make_ticket(company=self.other_company, customer=self.foreign_customer)

        self.assertEqual(self.client.get("/api/v1/tickets/").json()["data"], [])
        response = self.client.get(f"/api/v1/tickets/{foreign.id}/")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["message"], "Ticket not found")


class TicketUpdateTests(TicketApiTestCase):
    def test_completing_stamps_completed_date(self):
        ticket = self.make_ticket()

        response = self.client.put(
            f"/api/v1/tickets/{ticket.id}/",
            {"status": "completed", "repairNotes": "Screen replaced successfully"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["status"], "completed")
        self.assertEqual(data["repairNotes"], "Screen replaced successfully")
        self.assertIsNotNone(data["completedDate"])

    def test_reopening_clears_completed_date(self):
        ticket = self.make_ticket(status=Ticket.Status.COMPLETED, completed_date=timezone.now())

        response = self.client.patch(f"/api/v1/tickets/{ticket.id}/", {"status": "in_progress"}, format="json")

        self.assertIsNone(response.json()["data"]["completedDate"])
        ticket.refresh_from_db()
        self.assertIsNone(ticket.completed_date)

    def test_completed_date_without_completed_status_is_rejected(self):
        ticket = self.make_ticket()

        response = self.client.patch(
            f"/api/v1/tickets/{ticket.id}/", {"completedDate": timezone.now().isoformat()}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("completedDate", response.json()["error"]["errors"])

    def test_update_unknown_ticket_is_not_found(self):
        response = self.client.put(
            "/api/v1/tickets/00000000-0000-0000-0000-000000000000/", {"status": "completed"}, format="json"
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["message"], "Ticket not found")


class TicketDeleteTests(TicketApiTestCase):
    def test_delete_is_soft_and_second_delete_is_not_found(self):
        ticket = self.make_ticket()

        first = self.client.delete(f"/api/v1/tickets/{ticket.id}/")
        second = self.client.delete(f"/api/v1/tickets/{ticket.id}/")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["data"]["message"], "Ticket deleted successfully")
        self.assertEqual(second.status_code, 404)
        ticket.refresh_from_db()
        self.assertIsNotNone(ticket.deleted_at)
