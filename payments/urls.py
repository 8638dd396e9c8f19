from django.urls import path
from . import views

urlpatterns = [
    path("api/checkout/", views.checkout_api, name="checkout_api"),
    path("api/payment/verify/", views.payment_verify, name="payment_verify"),
    path("payment/success/", views.payment_success, name="payment_success"),
    path("payment/cancelled/", views.payment_cancelled, name="payment_cancelled"),
    path("payment/<uuid:reference>/", views.payment_resume, name="payment_resume"),
    path("webhooks/stripe/", views.stripe_webhook, name="stripe_webhook"),
]
