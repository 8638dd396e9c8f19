from .models import EventSetting

EVENT_NAME = "EVENT_NAME"
EVENT_START_DATE = "EVENT_START_DATE"
EVENT_END_DATE = "EVENT_END_DATE"
VENUE_NAME = "VENUE_NAME"
VENUE_ADDRESS = "VENUE_ADDRESS"
BOOTH_LOCATION = "BOOTH_LOCATION"
REGISTRATION_ENABLED = "REGISTRATION_ENABLED"

# key -> (default value, description)
DEFAULT_SETTINGS = {
    EVENT_NAME: ("EMS Trade Fair VIP Experience", "Name of the event"),
    EVENT_START_DATE: ("2025-07-26", "Event start date"),
    EVENT_END_DATE: ("2025-08-06", "Event end date"),
    VENUE_NAME: ("Malta Fairs and Conventions Centre", "Event venue name"),
    VENUE_ADDRESS: ("Ta' Qali, Malta", "Event venue address"),
    BOOTH_LOCATION: ("EMS Booth - MFCC", "EMS booth location"),
    REGISTRATION_ENABLED: ("true", "Whether registration is currently enabled"),
}


def get_setting(key, default=None):
    row = EventSetting.objects.filter(key=key).only("value").first()
    if row is not None:
        return row.value
    if default is not None:
        return default
    return DEFAULT_SETTINGS.get(key, ("", ""))[0]


def event_info() -> dict:
    stored = dict(EventSetting.objects.filter(key__in=DEFAULT_SETTINGS.keys()).values_list("key", "value"))
    info = {}
    for key, (default, _) in DEFAULT_SETTINGS.items():
        info[key.lower()] = stored.get(key, default)
    return info


def registration_enabled() -> bool:
    return str(get_setting(REGISTRATION_ENABLED)).strip().lower() in ("1", "true", "yes")


def seed_default_settings(overwrite=False) -> int:
    """Create any missing default settings. Returns how many rows were written."""
    written = 0
    for key, (value, description) in DEFAULT_SETTINGS.items():
        obj, created = EventSetting.objects.get_or_create(
            key=key, defaults={"value": value, "description": description}
        )
        if created:
            written += 1
        elif overwrite and obj.value != value:
            obj.value = value
            obj.save(update_fields=["value", "updated_at"])
            written += 1
    return written
