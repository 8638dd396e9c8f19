from django.urls import path
from . import views

urlpatterns = [
    path("api/ticket-types/", views.ticket_types_api, name="ticket_types_api"),
    path("tickets/<uuid:reference>/pdf/", views.tickets_pdf, name="tickets_pdf"),

    # door staff
    path("staff/", views.scanner, name="staff_scanner"),
    path("staff/verify/<str:ticket_number>/", views.staff_verify, name="staff_verify"),
    path("staff/collect/<str:ticket_number>/", views.staff_collect, name="staff_collect"),
    path("api/staff/verify/", views.staff_verify_api, name="staff_verify_api"),
    path("api/staff/search/", views.staff_search, name="staff_search"),
]
