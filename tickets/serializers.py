from rest_framework import serializers

from core.serializers import UserSummarySerializer
from sales.serializers import CustomerSummarySerializer
from tickets.models import Ticket


class TicketSerializer(serializers.ModelSerializer):
    ticketNumber = serializers.CharField(source="ticket_number", read_only=True)
    companyId = serializers.UUIDField(source="company_id", read_only=True)
    locationId = serializers.UUIDField(source="location_id", read_only=True, allow_null=True)
    customerId = serializers.UUIDField(source="customer_id", read_only=True)
    technicianId = serializers.UUIDField(source="technician_id", read_only=True, allow_null=True)
    deviceType = serializers.CharField(source="device_type", read_only=True)
    deviceBrand = serializers.CharField(source="device_brand", read_only=True)
    deviceModel = serializers.CharField(source="device_model", read_only=True)
    serialNumber = serializers.CharField(source="serial_number", read_only=True)
    issueDescription = serializers.CharField(source="issue_description", read_only=True)
    diagnosticNotes = serializers.CharField(source="diagnostic_notes", read_only=True)
    repairNotes = serializers.CharField(source="repair_notes", read_only=True)
    estimatedCompletionDate = serializers.DateTimeField(source="estimated_completion_date", read_only=True, allow_null=True)
    completedDate = serializers.DateTimeField(source="completed_date", read_only=True, allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Ticket
        fields = [
            "id",
            "ticketNumber",
            "companyId",
            "locationId",
            "customerId",
            "technicianId",
            "status",
            "priority",
            "deviceType",
            "deviceBrand",
            "deviceModel",
            "serialNumber",
            "issueDescription",
            "diagnosticNotes",
            "repairNotes",
            "estimatedCompletionDate",
            "completedDate",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields


def enriched_ticket_data(ticket, customer, technician):
    data = TicketSerializer(ticket).data
    data["customer"] = CustomerSummarySerializer(customer).data if customer is not None else None
    if technician is not None:
        data["technician"] = UserSummarySerializer(technician).data
    return data


class TicketWriteSerializer(serializers.Serializer):
    customerId = serializers.UUIDField(source="customer_id")
    technicianId = serializers.UUIDField(source="technician_id", required=False, allow_null=True)
    status = serializers.ChoiceField(choices=Ticket.Status.choices, required=False)
    priority = serializers.ChoiceField(choices=Ticket.Priority.choices, required=False)
    deviceType = serializers.CharField(source="device_type", max_length=128)
    deviceBrand = serializers.CharField(source="device_brand", max_length=128, required=False, allow_blank=True)
    deviceModel = serializers.CharField(source="device_model", max_length=128, required=False, allow_blank=True)
    serialNumber = serializers.CharField(source="serial_number", max_length=128, required=False, allow_blank=True)
    issueDescription = serializers.CharField(source="issue_description")
    diagnosticNotes = serializers.CharField(source="diagnostic_notes", required=False, allow_blank=True)
    repairNotes = serializers.CharField(source="repair_notes", required=False, allow_blank=True)
    estimatedCompletionDate = serializers.DateTimeField(
        source="estimated_completion_date", required=False, allow_null=True
    )
    completedDate = serializers.DateTimeField(source="completed_date", required=False, allow_null=True)
