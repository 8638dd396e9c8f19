from django.urls import path
from . import views

app_name = "registrations"

urlpatterns = [
    path("", views.registration_list, name="list"),
    path("quick/", views.quick_register, name="quick"),
    path("<int:pk>/", views.registration_detail, name="detail"),
    path("<int:pk>/edit/", views.registration_edit, name="edit"),
    path("<int:pk>/approve/", views.registration_approve, name="approve"),
    path("<int:pk>/reject/", views.registration_reject, name="reject"),
    path("<int:pk>/resend/", views.registration_resend, name="resend"),
    path("<int:pk>/generate/", views.registration_generate, name="generate"),
    path("panel-leads/", views.panel_leads, name="panel_leads"),
    path("panel-leads/<int:pk>/", views.panel_lead_edit, name="panel_lead_edit"),
]
