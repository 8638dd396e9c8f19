from django.urls import path, include
from . import views

app_name = "control"

urlpatterns = [
    path("", views.dashboard, name="home"),
    path("staff/", views.staff_list, name="staff"),
    path("staff/invite/", views.staff_invite, name="staff_invite"),
    path("staff/<int:pk>/role/", views.staff_role, name="staff_role"),
    path("staff/<int:pk>/toggle/", views.staff_deactivate, name="staff_deactivate"),
    path("registrations/", include("registrations.urls_control", namespace="registrations")),
    path("tickets/", include("tickets.urls_control", namespace="tickets")),
    path("coupons/", include("coupons.urls_control", namespace="coupons")),
    path("events/", include("events.urls_control", namespace="events")),
    path("accounts/", include("accounts.urls", namespace="accounts")),
]
