from django.contrib import admin
from .models import EventSetting


@admin.register(EventSetting)
class EventSettingAdmin(admin.ModelAdmin):
    list_display = ("key", "value", "description", "updated_at")
    search_fields = ("key", "value")
