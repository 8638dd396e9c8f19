from django.urls import path
from . import views

app_name = "tickets"

urlpatterns = [
    path("types/", views.tickettypes_list, name="types"),
    path("types/add/", views.tickettype_add, name="type_add"),
    path("types/<int:pk>/edit/", views.tickettype_edit, name="type_edit"),
    path("types/<int:pk>/delete/", views.tickettype_delete, name="type_delete"),
    path("types/<int:pk>/stock/", views.tickettype_stock, name="type_stock"),

    path("", views.tickets_sold, name="list"),
    path("export.csv", views.tickets_sold_export, name="export"),
    path("<int:pk>/", views.ticket_detail, name="ticket_detail"),
    path("<int:pk>/qr.png", views.ticket_qr_png, name="qr_png"),
    path("<int:pk>/cancel/", views.ticket_cancel, name="ticket_cancel"),
    path("<int:pk>/resend/", views.ticket_resend_email, name="ticket_resend"),
    path("registration/<int:pk>/pdf/", views.registration_pdf, name="registration_pdf"),
]
