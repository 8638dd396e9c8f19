from django.urls import path
from . import views

app_name = "coupons"

urlpatterns = [
    path("", views.coupon_list, name="list"),
    path("add/", views.coupon_add, name="add"),
    path("<int:pk>/edit/", views.coupon_edit, name="edit"),
    path("<int:pk>/delete/", views.coupon_delete, name="delete"),
    path("fix-usage/", views.fix_usage, name="fix_usage"),
]
