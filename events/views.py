from django.contrib import messages
from django.shortcuts import render, redirect, get_object_or_404

from accounts.permissions import is_admin
from .forms import EventSettingForm
from .models import EventSetting
from .utils import seed_default_settings


@is_admin
def settings_list(request):
    if request.method == "POST" and request.POST.get("seed"):
        n = seed_default_settings()
        messages.success(request, f"Added {n} default setting(s).")
        return redirect("control:events:settings")
    qs = EventSetting.objects.all()
    return render(request, "events/settings_list.html", {"settings": qs})


@is_admin
def setting_add(request):
    form = EventSettingForm(request.POST or None)
    if request.method == "POST" and form.is_valid():
        form.save()
        return redirect("control:events:settings")
    return render(request, "events/setting_form.html", {"form": form, "mode": "add"})


@is_admin
def setting_edit(request, pk):
    obj = get_object_or_404(EventSetting, pk=pk)
    form = EventSettingForm(request.POST or None, instance=obj)
    if request.method == "POST" and form.is_valid():
        form.save()
        messages.success(request, f"{obj.key} updated.")
        return redirect("control:events:settings")
    return render(request, "events/setting_form.html", {"form": form, "mode": "edit", "obj": obj})
