from django.urls import path

from .views import ActiveCouponsView, ValidateCouponView

app_name = "coupons"

urlpatterns = [
    path("validate", ValidateCouponView.as_view(), name="validate"),
    path("active", ActiveCouponsView.as_view(), name="active"),
]
