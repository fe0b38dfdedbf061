from django.urls import path

from .views import CreatePaymentIntentView, PaymentWebhookView, RefundPaymentView, VerifyPaymentView

app_name = "payments"

urlpatterns = [
    path("create-order", CreatePaymentIntentView.as_view(), name="create-order"),
    path("verify", VerifyPaymentView.as_view(), name="verify"),
    path("webhook", PaymentWebhookView.as_view(), name="webhook"),
    path("refund", RefundPaymentView.as_view(), name="refund"),
]
