import qrcode
import re
import secrets
import time
from io import BytesIO
from django.conf import settings
from django.urls import reverse

TICKET_NUMBER_RE = re.compile(r"^EMS(VIP|STD)\d{6}[A-F0-9]{8}$")
_FIND_NUMBER_RE = re.compile(r"EMS(?:VIP|STD)\d{6}[A-F0-9]{8}", re.I)


def generate_ticket_number(is_ems_client: bool) -> str:
    prefix = getattr(settings, "TICKET_PREFIX", "EMS")
    kind = "VIP" if is_ems_client else "STD"
    stamp = str(int(time.time() * 1000))[-6:]
    rand = secrets.token_hex(4).upper()
    return f"{prefix}{kind}{stamp}{rand}"


def is_valid_ticket_number(value: str) -> bool:
    return bool(TICKET_NUMBER_RE.match(value or ""))


def extract_ticket_number(text: str):
    """Accepts a bare ticket number or anything containing one (e.g. the QR verify URL)."""
    m = _FIND_NUMBER_RE.search((text or "").strip())
    if not m:
        return None
    return m.group(0).upper()


def verify_url(ticket_number: str) -> str:
    return settings.SITE_BASE_URL + reverse("staff_verify", args=[ticket_number])


def qr_png_bytes(data: str) -> bytes:
    qr = qrcode.QRCode(box_size=8, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
