from rest_framework import serializers

from sales.models import Customer, Invoice


class CustomerSerializer(serializers.ModelSerializer):
    firstName = serializers.CharField(source="first_name", max_length=150)
    lastName = serializers.CharField(source="last_name", max_length=150)
    zipCode = serializers.CharField(source="zip_code", max_length=32, required=False, allow_blank=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Customer
        fields = [
            "id",
            "firstName",
            "lastName",
            "email",
            "phone",
            "address",
            "city",
            "state",
            "zipCode",
            "notes",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = ["id"]


class CustomerSummarySerializer(serializers.ModelSerializer):
    firstName = serializers.CharField(source="first_name")
    lastName = serializers.CharField(source="last_name")

    class Meta:
        model = Customer
        fields = ["id", "firstName", "lastName", "email", "phone"]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    invoiceNumber = serializers.CharField(source="invoice_number", read_only=True)
    companyId = serializers.UUIDField(source="company_id", read_only=True)
    locationId = serializers.UUIDField(source="location_id", read_only=True, allow_null=True)
    customerId = serializers.UUIDField(source="customer_id", read_only=True)
    ticketId = serializers.UUIDField(source="ticket_id", read_only=True, allow_null=True)
    taxAmount = serializers.DecimalField(source="tax_amount", max_digits=12, decimal_places=2, read_only=True)
    totalAmount = serializers.DecimalField(source="total_amount", max_digits=12, decimal_places=2, read_only=True)
    dueDate = serializers.DateField(source="due_date", read_only=True, allow_null=True)
    paidDate = serializers.DateTimeField(source="paid_date", read_only=True, allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)
    customer = CustomerSummarySerializer(read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "invoiceNumber",
            "companyId",
            "locationId",
            "customerId",
            "customer",
            "ticketId",
            "status",
            "subtotal",
            "taxAmount",
            "totalAmount",
            "dueDate",
            "paidDate",
            "notes",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields


class InvoiceWriteSerializer(serializers.Serializer):
    """Input for invoice create/update; the view passes ``partial=True`` for updates."""

    customerId = serializers.UUIDField(source="customer_id")
    ticketId = serializers.UUIDField(source="ticket_id", required=False, allow_null=True)
    invoiceNumber = serializers.CharField(source="invoice_number", max_length=64, required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Invoice.Status.choices, required=False)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    taxAmount = serializers.DecimalField(source="tax_amount", max_digits=12, decimal_places=2, min_value=0, required=False)
    totalAmount = serializers.DecimalField(source="total_amount", max_digits=12, decimal_places=2, min_value=0, required=False)
    dueDate = serializers.DateField(source="due_date", required=False, allow_null=True)
    paidDate = serializers.DateTimeField(source="paid_date", required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
