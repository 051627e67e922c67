from django.urls import path

from reporting.views import DashboardStatsView, RevenueOverTimeView

urlpatterns = [
    path("reporting/dashboard-stats/", DashboardStatsView.as_view(), name="reporting_dashboard_stats"),
    path("reporting/revenue-over-time/", RevenueOverTimeView.as_view(), name="reporting_revenue_over_time"),
]
