from django.urls import path
from . import views

app_name = "events"

urlpatterns = [
    path("settings/", views.settings_list, name="settings"),
    path("settings/add/", views.setting_add, name="setting_add"),
    path("settings/<int:pk>/edit/", views.setting_edit, name="setting_edit"),
]
