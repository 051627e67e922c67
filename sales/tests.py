from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APIClient

from core.models import Company, User
from sales.models import Customer, Invoice


class CustomerApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(name="Customers Co")
        self.other_company = Company.objects.create(name="Other Customers Co")
        self.technician = User.objects.create_user(
            email="tech@customers.test", password="pass12345", company=self.company, role=User.Role.TECHNICIAN
        )
        self.customer = Customer.objects.create(
            company=self.company, first_name="Ada", last_name="Lovelace", email="ada@example.test", phone="555-0101"
        )
        self.foreign_customer = Customer.objects.create(company=self.other_company, first_name="Eve", last_name="Other")
        self.client.force_authenticate(user=self.technician)

    def test_list_is_company_scoped_and_searchable(self):
        Customer.objects.create(company=self.company, first_name="Grace", last_name="Hopper", phone="555-0199")

        response = self.client.get("/api/v1/customers/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["data"]), 2)

        response = self.client.get("/api/v1/customers/", {"search": "ada@"})
        self.assertEqual([row["firstName"] for row in response.json()["data"]], ["Ada"])

    def test_create_uses_caller_company(self):
        response = self.client.post(
            "/api/v1/customers/",
            {"firstName": "Alan", "lastName": "Turing", "zipCode": "12345"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        created = Customer.objects.get(id=response.json()["data"]["id"])
        self.assertEqual(created.company_id, self.company.id)
        self.assertEqual(created.zip_code, "12345")

    def test_create_requires_names(self):
        response = self.client.post("/api/v1/customers/", {"email": "x@example.test"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("firstName", response.json()["error"]["errors"])

    def test_foreign_customer_is_not_found(self):
        response = self.client.get(f"/api/v1/customers/{self.foreign_customer.id}/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["message"], "Customer not found")

    def test_soft_delete_twice_returns_not_found(self):
        first = self.client.delete(f"/api/v1/customers/{self.customer.id}/")
        second = self.client.delete(f"/api/v1/customers/{self.customer.id}/")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 404)
        self.customer.refresh_from_db()
        self.assertIsNotNone(self.customer.deleted_at)


class InvoiceApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(name="Billing Co")
        self.other_company = Company.objects.create(name="Other Billing Co")
        self.manager = User.objects.create_user(
            email="manager@billing.test", password="pass12345", company=self.company, role=User.Role.MANAGER
        )
        self.technician = User.objects.create_user(
            email="tech@billing.test", password="pass12345", company=self.company, role=User.Role.TECHNICIAN
        )
        self.customer = Customer.objects.create(company=self.company, first_name="Ada", last_name="Lovelace")
        self.foreign_customer = Customer.objects.create(company=self.other_company, first_name="Eve", last_name="Other")

    def test_create_assigns_number_and_total(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(
            "/api/v1/invoices/",
            {"customerId": str(self.customer.id), "subtotal": "100.00", "taxAmount": "8.25"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertTrue(data["invoiceNumber"].startswith("INV-"))
        self.assertTrue(data["invoiceNumber"].endswith("-0001"))
        self.assertEqual(Decimal(str(data["totalAmount"])), Decimal("108.25"))
        self.assertEqual(data["status"], "draft")
        self.assertIsNone(data["paidDate"])

    def test_paid_status_stamps_and_clears_paid_date(self):
        self.client.force_authenticate(user=self.manager)
        invoice = Invoice.objects.create(
            company=self.company, customer=self.customer, invoice_number="INV-MANUAL-1", total_amount=Decimal("50")
        )

        paid = self.client.patch(f"/api/v1/invoices/{invoice.id}/", {"status": "paid"}, format="json")
        self.assertEqual(paid.status_code, 200)
        self.assertIsNotNone(paid.json()["data"]["paidDate"])

        reopened = self.client.patch(f"/api/v1/invoices/{invoice.id}/", {"status": "sent"}, format="json")
        self.assertIsNone(reopened.json()["data"]["paidDate"])

    def test_customer_from_another_company_is_not_found(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(
            "/api/v1/invoices/", {"customerId": str(self.foreign_customer.id), "subtotal": "10.00"}, format="json"
        )

        self.assertEqual(response.status_code, 404)
        self.assertFalse(Invoice.objects.exists())

    def test_technician_can_view_but_not_create(self):
        self.client.force_authenticate(user=self.technician)

        self.assertEqual(self.client.get("/api/v1/invoices/").status_code, 200)
        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.post(
                "/api/v1/invoices/", {"customerId": str(self.customer.id)}, format="json"
            )
        self.assertEqual(response.status_code, 403)

    def test_list_filters_by_status(self):
        self.client.force_authenticate(user=self.manager)
        Invoice.objects.create(company=self.company, customer=self.customer, invoice_number="A-1", status="paid")
        Invoice.objects.create(company=self.company, customer=self.customer, invoice_number="A-2", status="draft")

        response = self.client.get("/api/v1/invoices/", {"status": "paid"})

        self.assertEqual([row["invoiceNumber"] for row in response.json()["data"]], ["A-1"])

    def test_number_of_deleted_invoice_cannot_be_reused(self):
        self.client.force_authenticate(user=self.manager)
        old = Invoice.objects.create(company=self.company, customer=self.customer, invoice_number="INV-OLD-1")
        self.client.delete(f"/api/v1/invoices/{old.id}/")

        response = self.client.post(
            "/api/v1/invoices/",
            {"customerId": str(self.customer.id), "invoiceNumber": "INV-OLD-1", "subtotal": "10.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("invoiceNumber", response.json()["error"]["errors"])

    def test_renumbering_to_a_taken_number_is_rejected(self):
        self.client.force_authenticate(user=self.manager)
        Invoice.objects.create(company=self.company, customer=self.customer, invoice_number="B-1")
        second = Invoice.objects.create(company=self.company, customer=self.customer, invoice_number="B-2")

        taken = self.client.patch(f"/api/v1/invoices/{second.id}/", {"invoiceNumber": "B-1"}, format="json")
        unchanged = self.client.patch(f"/api/v1/invoices/{second.id}/", {"invoiceNumber": "B-2"}, format="json")

        self.assertEqual(taken.status_code, 400)
        self.assertIn("invoiceNumber", taken.json()["error"]["errors"])
        self.assertEqual(unchanged.status_code, 200)
        second.refresh_from_db()
        self.assertEqual(second.invoice_number, "B-2")

    def test_same_number_is_allowed_in_another_company(self):
        self.client.force_authenticate(user=self.manager)
        Invoice.objects.create(company=self.other_company, customer=self.foreign_customer, invoice_number="C-1")

        response = self.client.post(
            "/api/v1/invoices/",
            {"customerId": str(self.customer.id), "invoiceNumber": "C-1"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
