from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from core.models import Company, Location, User
from inventory.models import InventoryItem
from reporting.services import current_month_bounds, get_dashboard_stats, get_revenue_over_time, resolve_range
from sales.models import Customer, Invoice
from tickets.models import Ticket


def at(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=dt_timezone.utc)


class ReportingTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(name="Report Co")
        self.other_company = Company.objects.create(name="Other Report Co")
        self.main = Location.objects.create(company=self.company, name="Main")
        self.annex = Location.objects.create(company=self.company, name="Annex")
        self.manager = User.objects.create_user(
            email="manager@report.test", password="pass12345", company=self.company, role=User.Role.MANAGER
        )
        self.technician = User.objects.create_user(
            email="tech@report.test", password="pass12345", company=self.company, role=User.Role.TECHNICIAN
        )
        self.customer = Customer.objects.create(company=self.company, first_name="Ada", last_name="Lovelace")
        self.foreign_customer = Customer.objects.create(company=self.other_company, first_name="Eve", last_name="X")
        self._serial = 0

    def invoice(self, total, status=Invoice.Status.PAID, paid_date=None, company=None, customer=None, **extra):
        self._serial += 1
        return Invoice.objects.create(
            company=company or self.company,
            customer=customer or self.customer,
            invoice_number=f"INV-T-{self._serial}",
            status=status,
            total_amount=Decimal(total),
            paid_date=paid_date,
            **extra,
        )


class DashboardStatsTests(ReportingTestCase):
    def test_zero_paid_invoices_reports_zero_revenue(self):
        self.invoice("80.00", status=Invoice.Status.DRAFT)

        stats = get_dashboard_stats(self.company.id)

        self.assertEqual(stats["monthlyRevenue"], 0)
        self.assertEqual(stats["totalCustomers"], 1)

    def test_revenue_counts_only_paid_invoices_of_the_month(self):
        now = timezone.now()
        month_start, _ = current_month_bounds()
        self.invoice("100.00", paid_date=now)
        self.invoice("50.50", paid_date=now)
        self.invoice("999.00", status=Invoice.Status.SENT)
        self.invoice("999.00", paid_date=None)
        self.invoice("999.00", paid_date=month_start - timedelta(days=1))
        self.invoice("999.00", paid_date=now, deleted_at=now)
        self.invoice("999.00", paid_date=now, company=self.other_company, customer=self.foreign_customer)

        stats = get_dashboard_stats(self.company.id)

        self.assertEqual(stats["monthlyRevenue"], 150.5)

    def test_location_scopes_everything_but_customers(self):
        now = timezone.now()
        self.invoice("100.00", paid_date=now, location=self.main)
        self.invoice("40.00", paid_date=now, location=self.annex)
        InventoryItem.objects.create(company=self.company, location=self.main, sku="A", name="A", quantity=1, reorder_level=5)
        InventoryItem.objects.create(company=self.company, location=self.annex, sku="B", name="B", quantity=0, reorder_level=2)
        InventoryItem.objects.create(company=self.company, location=self.main, sku="C", name="C", quantity=9, reorder_level=2)
        InventoryItem.objects.create(
            company=self.company, location=self.main, sku="D", name="D", quantity=0, reorder_level=2, deleted_at=now
        )
        common = {"company": self.company, "customer": self.customer, "device_type": "Phone", "issue_description": "x"}
        Ticket.objects.create(ticket_number="T-1", location=self.main, **common)
        Ticket.objects.create(ticket_number="T-2", location=self.main, status=Ticket.Status.COMPLETED, **common)
        Ticket.objects.create(ticket_number="T-3", location=self.main, status=Ticket.Status.CANCELLED, **common)
        Ticket.objects.create(ticket_number="T-4", location=self.annex, status=Ticket.Status.WAITING_FOR_PARTS, **common)
        Customer.objects.create(company=self.company, first_name="Gone", last_name="Away", deleted_at=now)

        stats = get_dashboard_stats(self.company.id, location_id=self.main.id)

        self.assertEqual(
            stats,
            {"monthlyRevenue": 100.0, "lowStockCount": 1, "activeTickets": 1, "totalCustomers": 1},
        )
        company_wide = get_dashboard_stats(self.company.id)
        self.assertEqual(company_wide["lowStockCount"], 2)
        self.assertEqual(company_wide["activeTickets"], 2)

    def test_endpoint_is_open_to_technicians(self):
        self.client.force_authenticate(user=self.technician)

        response = self.client.get("/api/v1/reporting/dashboard-stats/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["data"],
            {"monthlyRevenue": 0, "lowStockCount": 0, "activeTickets": 0, "totalCustomers": 1},
        )

    def test_endpoint_accepts_explicit_range_and_location(self):
        self.invoice("30.00", paid_date=at(2024, 3, 5), location=self.main)
        self.client.force_authenticate(user=self.manager)

        response = self.client.get(
            "/api/v1/reporting/dashboard-stats/",
            {"startDate": "2024-03-01", "endDate": "2024-03-31", "locationId": str(self.main.id)},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["monthlyRevenue"], 30.0)

    def test_start_date_alone_closes_at_its_month_end(self):
        self.invoice("70.00", paid_date=at(2099, 1, 20))
        self.invoice("999.00", paid_date=at(2099, 2, 1))
        self.client.force_authenticate(user=self.manager)

        response = self.client.get("/api/v1/reporting/dashboard-stats/", {"startDate": "2099-01-15"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["monthlyRevenue"], 70.0)

    def test_future_start_date_reports_zero_revenue(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get("/api/v1/reporting/dashboard-stats/", {"startDate": "2099-01-01"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["monthlyRevenue"], 0)

    def test_one_sided_ranges_use_that_bounds_month(self):
        self.assertEqual(resolve_range(start_date=date(2099, 1, 15)), (at(2099, 1, 15, 0), at(2099, 2, 1, 0)))
        self.assertEqual(resolve_range(end_date=date(2020, 2, 10)), (at(2020, 2, 1, 0), at(2020, 2, 11, 0)))

    def test_inverted_range_is_rejected(self):
        with self.assertRaises(ValidationError):
            resolve_range(start_date=date(2024, 3, 10), end_date=date(2024, 3, 1))


class RevenueOverTimeTests(ReportingTestCase):
    def setUp(self):
        super().setUp()
        self.invoice("10.00", paid_date=at(2024, 3, 5, 9))
        self.invoice("15.00", paid_date=at(2024, 3, 5, 17))
        self.invoice("20.00", paid_date=at(2024, 3, 20))
        self.invoice("99.00", paid_date=at(2024, 4, 2))

    def test_groups_by_day(self):
        points = get_revenue_over_time(self.company.id, at(2024, 3, 1).date(), at(2024, 3, 31).date())

        self.assertEqual(points, [{"date": "2024-03-05", "revenue": 25.0}, {"date": "2024-03-20", "revenue": 20.0}])

    def test_groups_by_week_and_month(self):
        start, end = at(2024, 3, 1).date(), at(2024, 3, 31).date()

        weekly = get_revenue_over_time(self.company.id, start, end, group_by="week")
        monthly = get_revenue_over_time(self.company.id, start, end, group_by="month")

        self.assertEqual([point["date"] for point in weekly], ["2024-03-04", "2024-03-18"])
        self.assertEqual(monthly, [{"date": "2024-03-01", "revenue": 45.0}])

    def test_endpoint_requires_dates(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get("/api/v1/reporting/revenue-over-time/", {"endDate": "2024-03-31"})

        self.assertEqual(response.status_code, 400)
        self.assertIn("startDate", response.json()["error"]["errors"])

    def test_endpoint_rejects_unknown_grouping(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get(
            "/api/v1/reporting/revenue-over-time/",
            {"startDate": "2024-03-01", "endDate": "2024-03-31", "groupBy": "year"},
        )

        self.assertEqual(response.status_code, 400)

    def test_endpoint_returns_points_for_managers(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get(
            "/api/v1/reporting/revenue-over-time/",
            {"startDate": "2024-03-01", "endDate": "2024-04-30", "groupBy": "month"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["data"],
            [{"date": "2024-03-01", "revenue": 45.0}, {"date": "2024-04-01", "revenue": 99.0}],
        )

    def test_technicians_cannot_read_revenue(self):
        self.client.force_authenticate(user=self.technician)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.get(
                "/api/v1/reporting/revenue-over-time/", {"startDate": "2024-03-01", "endDate": "2024-03-31"}
            )

        self.assertEqual(response.status_code, 403)
