from django.urls import path
from . import views

urlpatterns = [
    path("", views.home, name="home"),
    path("book/", views.book, name="book"),
    path("book/<uuid:reference>/", views.registration_done, name="registration_done"),
    path("ticket-status/", views.ticket_status_page, name="ticket_status_page"),
    path("contact/", views.contact, name="contact"),
    path("privacy/", views.privacy, name="privacy"),
]
