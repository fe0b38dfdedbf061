from django.urls import path

from .views import CancelOrderView, OrdersCollectionView, RetrieveOrderByNumberView, RetrieveOrderView

app_name = "orders"

urlpatterns = [
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("by-number/<str:order_number>/", RetrieveOrderByNumberView.as_view(), name="orders-by-number"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<str:order_number>/cancel/", CancelOrderView.as_view(), name="orders-cancel"),
]
