from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.exceptions import ValidationError
from rest_framework.views import APIView

from common.permissions import TENANT_PERMISSION_CLASSES
from common.responses import success_response
from reporting import services


def _parse_day(raw, field, required=False):
    if not raw:
        if required:
            raise ValidationError({field: ["This query parameter is required."]})
        return None
    day = parse_date(raw)
    if day is None:
        moment = parse_datetime(raw)
        day = moment.date() if moment else None
    if day is None:
        raise ValidationError({field: ["Enter a date in YYYY-MM-DD format."]})
    return day


class DashboardStatsView(APIView):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {"get": "reporting.dashboard.view"}

    def get(self, request):
        stats = services.get_dashboard_stats(
            request.company_id,
            location_id=request.location_id,
            start_date=_parse_day(request.query_params.get("startDate"), "startDate"),
            end_date=_parse_day(request.query_params.get("endDate"), "endDate"),
        )
        return success_response(stats)


class RevenueOverTimeView(APIView):
    permission_classes = TENANT_PERMISSION_CLASSES
    permission_action_map = {"get": "reporting.revenue.view"}

    def get(self, request):
        points = services.get_revenue_over_time(
            request.company_id,
            start_date=_parse_day(request.query_params.get("startDate"), "startDate", required=True),
            end_date=_parse_day(request.query_params.get("endDate"), "endDate", required=True),
            group_by=request.query_params.get("groupBy") or "day",
            location_id=request.location_id,
        )
        return success_response(points)
