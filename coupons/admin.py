from django.contrib import admin
from .models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "discount_type", "discount_value", "current_uses", "max_uses", "active", "valid_to")
    list_filter = ("active", "discount_type", "ems_clients_only", "public_only")
    search_fields = ("code", "name")
