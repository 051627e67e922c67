import uuid

from django.conf import settings
from django.db import models

from core.models import Company, Location
from sales.models import Customer


class Ticket(models.Model):
    class Status(models.TextChoices):
        NEW = "new", "New"
        IN_PROGRESS = "in_progress", "In Progress"
        WAITING_FOR_PARTS = "waiting_for_parts", "Waiting For Parts"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    class Priority(models.TextChoices):
        LOW = "low", "Low"
        MEDIUM = "medium", "Medium"
        HIGH = "high", "High"

    CLOSED_STATUSES = (Status.COMPLETED, Status.CANCELLED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT, related_name="tickets")
    location = models.ForeignKey(Location, on_delete=models.PROTECT, null=True, blank=True, related_name="tickets")
    ticket_number = models.CharField(max_length=32)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="tickets")
    technician = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_tickets",
    )
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.NEW)
    priority = models.CharField(max_length=16, choices=Priority.choices, default=Priority.MEDIUM)
    device_type = models.CharField(max_length=128)
    device_brand = models.CharField(max_length=128, blank=True, default="")
    device_model = models.CharField(max_length=128, blank=True, default="")
    serial_number = models.CharField(max_length=128, blank=True, default="")
    issue_description = models.TextField()
    diagnostic_notes = models.TextField(blank=True, default="")
    repair_notes = models.TextField(blank=True, default="")
    estimated_completion_date = models.DateTimeField(null=True, blank=True)
    completed_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["company", "status", "deleted_at"], name="tickets_company_status_idx"),
            models.Index(fields=["company", "customer"], name="tickets_company_customer_idx"),
            models.Index(fields=["company", "location"], name="tickets_company_location_idx"),
        ]
        constraints = [
            models.UniqueConstraint(fields=["company", "ticket_number"], name="uniq_ticket_number_per_company"),
        ]
