from django import template

register = template.Library()


@register.filter
def money(cents):
    try:
        return f"€{(int(cents) / 100):.2f}"
    except (TypeError, ValueError):
        return "€0.00"


@register.filter
def get_item(d, key):
    return (d or {}).get(key)
