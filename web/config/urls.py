from django.urls import include, path

urlpatterns = [
    path("", include("apps.monitoring.urls")),
    path("api/orders/", include("apps.orders.urls")),
    path("api/admin/orders/", include("apps.orders.admin_urls")),
    path("api/payments/", include("apps.payments.urls")),
    path("api/coupons/", include("apps.coupons.urls")),
]
