from rest_framework import viewsets

from common.permissions import TENANT_PERMISSION_CLASSES
from common.responses import created_response, success_response
from sales import services
from sales.serializers import CustomerSerializer, InvoiceSerializer, InvoiceWriteSerializer


class CustomerViewSet(viewsets.ViewSet):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {
        "list": "customers.view",
        "retrieve": "customers.view",
        "create": "customers.manage",
        "update": "customers.manage",
        "partial_update": "customers.manage",
        "destroy": "customers.manage",
    }

    def list(self, request):
        customers = services.list_customers(request.company_id, search=request.query_params.get("search"))
        return success_response(CustomerSerializer(customers, many=True).data)

    def retrieve(self, request, pk=None):
        return success_response(CustomerSerializer(services.get_customer(request.company_id, pk)).data)

    def create(self, request):
        serializer = CustomerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        customer = services.create_customer(request.company_id, serializer.validated_data)
        return created_response(CustomerSerializer(customer).data)

    def update(self, request, pk=None, partial=False):
        serializer = CustomerSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        customer = services.update_customer(request.company_id, pk, serializer.validated_data)
        return success_response(CustomerSerializer(customer).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    def destroy(self, request, pk=None):
        services.delete_customer(request.company_id, pk)
        return success_response({"message": "Customer deleted successfully"})


class InvoiceViewSet(viewsets.ViewSet):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {
        "list": "invoices.view",
        "retrieve": "invoices.view",
        "create": "invoices.manage",
        "update": "invoices.manage",
        "partial_update": "invoices.manage",
        "destroy": "invoices.manage",
    }

    def list(self, request):
        invoices = services.list_invoices(
            request.company_id,
            status=request.query_params.get("status"),
            customer_id=request.query_params.get("customerId"),
            location_id=request.location_id,
        )
        return success_response(InvoiceSerializer(invoices, many=True).data)

    def retrieve(self, request, pk=None):
        return success_response(InvoiceSerializer(services.get_invoice(request.company_id, pk)).data)

    def create(self, request):
        serializer = InvoiceWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invoice = services.create_invoice(request.company_id, serializer.validated_data, location_id=request.location_id)
        return created_response(InvoiceSerializer(invoice).data)

    def update(self, request, pk=None):
        serializer = InvoiceWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        invoice = services.update_invoice(request.company_id, pk, serializer.validated_data)
        return success_response(InvoiceSerializer(invoice).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)

    def destroy(self, request, pk=None):
        services.delete_invoice(request.company_id, pk)
        return success_response({"message": "Invoice deleted successfully"})
