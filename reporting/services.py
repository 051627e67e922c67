"""Dashboard and revenue aggregates.

Every call recomputes from the database. Revenue counts invoices whose status
is ``paid`` and whose ``paid_date`` falls in ``[start, end)``.
"""

from datetime import datetime, time, timedelta
from decimal import Decimal

from django.db.models import DecimalField, F, Sum, Value
from django.db.models.functions import Coalesce, TruncDay, TruncMonth, TruncWeek
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from inventory.models import InventoryItem
from sales.models import Customer, Invoice
from tickets.models import Ticket

PERIOD_TRUNCATORS = {
    "day": TruncDay,
    "week": TruncWeek,
    "month": TruncMonth,
}

MONEY_FIELD = DecimalField(max_digits=14, decimal_places=2)


def _day_start(day):
    return timezone.make_aware(datetime.combine(day, time.min))


def month_bounds(day):
    start = day.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return _day_start(start), _day_start(next_month)


def current_month_bounds(now=None):
    return month_bounds(timezone.localdate(now))


def resolve_range(start_date=None, end_date=None):
    """Turn optional inclusive dates into an aware ``[start, end)`` window.

    Missing bounds default to the calendar month of the bound that was
    given, or the current month when neither was.
    """
    month_start, month_end = month_bounds(start_date or end_date or timezone.localdate())
    start = _day_start(start_date) if start_date else month_start
    end = _day_start(end_date + timedelta(days=1)) if end_date else month_end
    if start >= end:
        raise ValidationError({"endDate": ["endDate must be on or after startDate."]})
    return start, end


def _paid_invoices(company_id, start, end, location_id=None):
    qs = Invoice.objects.filter(
        company_id=company_id,
        status=Invoice.Status.PAID,
        paid_date__isnull=False,
        paid_date__gte=start,
        paid_date__lt=end,
        deleted_at__isnull=True,
    )
    if location_id:
        qs = qs.filter(location_id=location_id)
    return qs


def _as_number(value):
    return float(value or Decimal("0"))


def get_dashboard_stats(company_id, location_id=None, start_date=None, end_date=None):
    start, end = resolve_range(start_date, end_date)

    revenue = _paid_invoices(company_id, start, end, location_id).aggregate(
        total=Coalesce(Sum("total_amount"), Value(Decimal("0")), output_field=MONEY_FIELD)
    )["total"]

    items = InventoryItem.objects.filter(company_id=company_id, deleted_at__isnull=True)
    tickets = Ticket.objects.filter(company_id=company_id, deleted_at__isnull=True).exclude(
        status__in=Ticket.CLOSED_STATUSES
    )
    if location_id:
        items = items.filter(location_id=location_id)
        tickets = tickets.filter(location_id=location_id)

    return {
        "monthlyRevenue": _as_number(revenue),
        "lowStockCount": items.filter(quantity__lt=F("reorder_level")).count(),
        "activeTickets": tickets.count(),
        # Customers are shared by every location of the company.
        "totalCustomers": Customer.objects.filter(company_id=company_id, deleted_at__isnull=True).count(),
    }


def get_revenue_over_time(company_id, start_date, end_date, group_by="day", location_id=None):
    truncator = PERIOD_TRUNCATORS.get(group_by)
    if truncator is None:
        raise ValidationError({"groupBy": [f"groupBy must be one of: {', '.join(PERIOD_TRUNCATORS)}."]})

    start, end = resolve_range(start_date, end_date)
    rows = (
        _paid_invoices(company_id, start, end, location_id)
        .annotate(period=truncator("paid_date"))
        .values("period")
        .annotate(revenue=Coalesce(Sum("total_amount"), Value(Decimal("0")), output_field=MONEY_FIELD))
        .order_by("period")
    )
    return [
        {"date": timezone.localtime(row["period"]).date().isoformat(), "revenue": _as_number(row["revenue"])}
        for row in rows
    ]
