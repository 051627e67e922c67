from __future__ import annotations

from client.api import ApiClient, ApiResponse, SessionContext

GROUPINGS = ("day", "week", "month")


def get_dashboard_stats(
    client: ApiClient,
    context: SessionContext,
    location_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> ApiResponse:
    params = {"locationId": location_id, "startDate": start_date, "endDate": end_date}
    return client.request("GET", "reporting/dashboard-stats/", context, params=params)


def get_revenue_over_time(
    client: ApiClient,
    context: SessionContext,
    start_date: str,
    end_date: str,
    location_id: str | None = None,
    group_by: str = "day",
) -> ApiResponse:
    if group_by not in GROUPINGS:
        raise ValueError(f"group_by must be one of {GROUPINGS}")
    params = {"startDate": start_date, "endDate": end_date, "groupBy": group_by, "locationId": location_id}
    return client.request("GET", "reporting/revenue-over-time/", context, params=params)
