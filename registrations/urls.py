from django.urls import path
from . import views

urlpatterns = [
    path("api/register/", views.register_api, name="register_api"),
    path("api/registrations/check-eligibility/", views.eligibility_api, name="check_eligibility"),
    path("api/registrations/<uuid:reference>/", views.registration_detail_api, name="registration_detail_api"),
    path("api/ticket-status/", views.ticket_status_api, name="ticket_status_api"),
]
