from django.urls import path

from .admin_views import (
    AdminOrderDetailView,
    AdminOrderNotesView,
    AdminOrdersView,
    AdminOrderStatsView,
    AdminOrderStatusView,
    AdminOrderTrackingView,
)

app_name = "orders-admin"

urlpatterns = [
    path("", AdminOrdersView.as_view(), name="list"),
    path("stats/", AdminOrderStatsView.as_view(), name="stats"),
    path("<uuid:oid>/", AdminOrderDetailView.as_view(), name="detail"),
    path("<uuid:oid>/status/", AdminOrderStatusView.as_view(), name="status"),
    path("<uuid:oid>/tracking/", AdminOrderTrackingView.as_view(), name="tracking"),
    path("<uuid:oid>/notes/", AdminOrderNotesView.as_view(), name="notes"),
]
