from django import forms
from .models import EventSetting


class EventSettingForm(forms.ModelForm):
    class Meta:
        model = EventSetting
        fields = ["key", "value", "description"]
