from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("control/", include("controlpanel.urls", namespace="control")),
    path("", include("registrations.urls")),
    path("", include("coupons.urls")),
    path("", include("tickets.urls")),
    path("", include("payments.urls")),
    path("", include("pages.urls")),
]
