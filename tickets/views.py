from rest_framework import viewsets

from common.permissions import TENANT_PERMISSION_CLASSES
from common.responses import created_response, success_response
from tickets import services
from tickets.serializers import TicketSerializer, TicketWriteSerializer, enriched_ticket_data


class TicketViewSet(viewsets.ViewSet):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {
        "list": "tickets.view",
        "retrieve": "tickets.view",
        "create": "tickets.manage",
        "update": "tickets.manage",
        "partial_update": "tickets.manage",
        "destroy": "tickets.manage",
    }

    def list(self, request):
        rows = services.list_tickets(
            request.company_id,
            customer_id=request.query_params.get("customerId"),
            status=request.query_params.get("status"),
        )
        return success_response([enriched_ticket_data(*row) for row in rows])

    def retrieve(self, request, pk=None):
        ticket = services.get_ticket(request.company_id, pk)
        [row] = services.enrich_tickets(request.company_id, [ticket])
        return success_response(enriched_ticket_data(*row))

    def create(self, request):
        serializer = TicketWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = services.create_ticket(request.company_id, serializer.validated_data, location_id=request.location_id)
        return created_response(TicketSerializer(ticket).data)

    def update(self, request, pk=None):
        serializer = TicketWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        ticket = services.update_ticket(request.company_id, pk, serializer.validated_data)
        return success_response(TicketSerializer(ticket).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)

    def destroy(self, request, pk=None):
        services.delete_ticket(request.company_id, pk)
        return success_response({"message": "Ticket deleted successfully"})
