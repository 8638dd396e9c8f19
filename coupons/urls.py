from django.urls import path
from . import views

urlpatterns = [
    path("api/coupons/validate/", views.validate_api, name="coupon_validate"),
    path("api/pricing/calculate/", views.pricing_api, name="pricing_calculate"),
]
