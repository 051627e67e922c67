import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from common.utils import daily_prefix, get_scoped_object, next_serial_number, parse_uuid, soft_delete
from sales.models import Customer
from sales.services import get_customer
from tickets.models import Ticket

logger = logging.getLogger(__name__)

User = get_user_model()

SERIAL_RETRIES = 3
COMPLETED_DATE_ERROR = "Completed date can only be set when status is completed."


def live_tickets(company_id):
    return Ticket.objects.filter(company_id=company_id, deleted_at__isnull=True)


def enrich_tickets(company_id, tickets):
    """Pair each ticket with its customer and technician using one query per relation.

    Returns ``(ticket, customer, technician)`` triples. A customer that was
    soft-deleted or a technician outside the company comes back as ``None``.
    """
    tickets = list(tickets)
    customer_ids = {ticket.customer_id for ticket in tickets}
    technician_ids = {ticket.technician_id for ticket in tickets if ticket.technician_id}

    customers = {}
    if customer_ids:
        customers = {
            customer.id: customer
            for customer in Customer.objects.filter(company_id=company_id, id__in=customer_ids, deleted_at__isnull=True)
        }
    technicians = {}
    if technician_ids:
        technicians = {user.id: user for user in User.objects.filter(company_id=company_id, id__in=technician_ids)}

    return [(ticket, customers.get(ticket.customer_id), technicians.get(ticket.technician_id)) for ticket in tickets]


def list_tickets(company_id, customer_id=None, status=None):
    qs = live_tickets(company_id)
    if customer_id:
        qs = qs.filter(customer_id=parse_uuid(customer_id))
    if status:
        qs = qs.filter(status=status)
    return enrich_tickets(company_id, qs.order_by("-created_at"))


def get_ticket(company_id, ticket_id):
    return get_scoped_object(live_tickets(company_id), ticket_id, "Ticket not found")


def _resolve_technician(company_id, technician_id):
    if technician_id is None:
        return None
    return get_scoped_object(
        User.objects.filter(company_id=company_id, is_active=True), technician_id, "Technician not found"
    )


def _apply_references(company_id, ticket, data):
    if "customer_id" in data:
        ticket.customer = get_customer(company_id, data.pop("customer_id"))
    if "technician_id" in data:
        ticket.technician = _resolve_technician(company_id, data.pop("technician_id"))


def _enforce_completed_date(ticket, supplied_completed_date):
    if ticket.status == Ticket.Status.COMPLETED:
        if ticket.completed_date is None:
            ticket.completed_date = timezone.now()
        return
    if supplied_completed_date is not None:
        raise ValidationError({"completedDate": [COMPLETED_DATE_ERROR]})
    ticket.completed_date = None


def create_ticket(company_id, data, location_id=None):
    data = dict(data)
    ticket = Ticket(company_id=company_id, location_id=location_id)
    _apply_references(company_id, ticket, data)
    for field, value in data.items():
        setattr(ticket, field, value)
    _enforce_completed_date(ticket, data.get("completed_date"))

    for attempt in range(SERIAL_RETRIES):
        ticket.ticket_number = next_serial_number(
            Ticket.objects.filter(company_id=company_id), "ticket_number", daily_prefix("TKT")
        )
        try:
            with transaction.atomic():
                ticket.save(force_insert=True)
            break
        except IntegrityError:
            if attempt == SERIAL_RETRIES - 1:
                raise

    logger.info("ticket_created ticket=%s", ticket.ticket_number, extra={"company_id": str(company_id)})
    return ticket


def update_ticket(company_id, ticket_id, data):
    ticket = get_ticket(company_id, ticket_id)
    data = dict(data)
    _apply_references(company_id, ticket, data)
    for field, value in data.items():
        setattr(ticket, field, value)
    _enforce_completed_date(ticket, data.get("completed_date"))
    ticket.save()
    return ticket


def delete_ticket(company_id, ticket_id):
    return soft_delete(get_ticket(company_id, ticket_id))
