from decimal import Decimal, ROUND_HALF_UP

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from common.utils import daily_prefix, get_scoped_object, next_serial_number, parse_uuid, soft_delete
from sales.models import Customer, Invoice
from tickets.models import Ticket

MONEY_QUANT = Decimal("0.01")
SERIAL_RETRIES = 3


def _to_money(value):
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def live_customers(company_id):
    return Customer.objects.filter(company_id=company_id, deleted_at__isnull=True)


def list_customers(company_id, search=None):
    qs = live_customers(company_id)
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search)
            | Q(last_name__icontains=search)
            | Q(email__icontains=search)
            | Q(phone__icontains=search)
        )
    return qs.order_by("last_name", "first_name")


def get_customer(company_id, customer_id):
    return get_scoped_object(live_customers(company_id), customer_id, "Customer not found")


def create_customer(company_id, data):
    return Customer.objects.create(company_id=company_id, **data)


def update_customer(company_id, customer_id, data):
    customer = get_customer(company_id, customer_id)
    for field, value in data.items():
        setattr(customer, field, value)
    customer.save()
    return customer


def delete_customer(company_id, customer_id):
    return soft_delete(get_customer(company_id, customer_id))


def live_invoices(company_id):
    return Invoice.objects.filter(company_id=company_id, deleted_at__isnull=True)


def list_invoices(company_id, status=None, customer_id=None, location_id=None):
    qs = live_invoices(company_id).select_related("customer")
    if status:
        qs = qs.filter(status=status)
    if customer_id:
        qs = qs.filter(customer_id=parse_uuid(customer_id))
    if location_id:
        qs = qs.filter(location_id=location_id)
    return qs.order_by("-created_at")


def get_invoice(company_id, invoice_id):
    return get_scoped_object(live_invoices(company_id).select_related("customer"), invoice_id, "Invoice not found")


def _apply_paid_rule(invoice):
    if invoice.status == Invoice.Status.PAID:
        if invoice.paid_date is None:
            invoice.paid_date = timezone.now()
    else:
        invoice.paid_date = None


def _apply_totals(invoice, data):
    invoice.subtotal = _to_money(invoice.subtotal or 0)
    invoice.tax_amount = _to_money(invoice.tax_amount or 0)
    if "total_amount" in data:
        invoice.total_amount = _to_money(data["total_amount"])
    else:
        invoice.total_amount = invoice.subtotal + invoice.tax_amount


def _resolve_references(company_id, data):
    if "customer_id" in data:
        data["customer"] = get_customer(company_id, data.pop("customer_id"))
    if "ticket_id" in data:
        ticket_id = data.pop("ticket_id")
        data["ticket"] = None
        if ticket_id is not None:
            data["ticket"] = get_scoped_object(
                Ticket.objects.filter(company_id=company_id, deleted_at__isnull=True), ticket_id, "Ticket not found"
            )
    return data


def _ensure_unique_number(company_id, invoice_number, exclude_id=None):
    # Soft-deleted invoices keep their numbers.
    qs = Invoice.objects.filter(company_id=company_id, invoice_number=invoice_number)
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    if qs.exists():
        raise ValidationError({"invoiceNumber": ["An invoice with this number already exists."]})


def create_invoice(company_id, data, location_id=None):
    data = _resolve_references(company_id, dict(data))
    invoice = Invoice(company_id=company_id, location_id=location_id, **data)
    _apply_totals(invoice, data)
    _apply_paid_rule(invoice)

    if invoice.invoice_number:
        _ensure_unique_number(company_id, invoice.invoice_number)
        invoice.save()
        return invoice

    for attempt in range(SERIAL_RETRIES):
        invoice.invoice_number = next_serial_number(
            Invoice.objects.filter(company_id=company_id), "invoice_number", daily_prefix("INV"), width=4
        )
        try:
            with transaction.atomic():
                invoice.save(force_insert=True)
            return invoice
        except IntegrityError:
            if attempt == SERIAL_RETRIES - 1:
                raise
    return invoice


def update_invoice(company_id, invoice_id, data):
    invoice = get_invoice(company_id, invoice_id)
    data = _resolve_references(company_id, dict(data))
    if data.get("invoice_number"):
        _ensure_unique_number(company_id, data["invoice_number"], exclude_id=invoice.id)
    else:
        data.pop("invoice_number", None)
    for field, value in data.items():
        setattr(invoice, field, value)
    if {"subtotal", "tax_amount", "total_amount"} & set(data):
        _apply_totals(invoice, data)
    _apply_paid_rule(invoice)
    invoice.save()
    return invoice


def delete_invoice(company_id, invoice_id):
    return soft_delete(get_invoice(company_id, invoice_id))
