from django.db import models


class EventSetting(models.Model):
    """Key/value configuration for the running event (name, dates, venue...)."""
    key = models.CharField(max_length=80, unique=True)
    value = models.TextField(blank=True)
    description = models.CharField(max_length=240, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]

    def __str__(self):
        return f"{self.key}={self.value}"
