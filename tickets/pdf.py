from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from events.utils import event_info
from .utils import qr_png_bytes, verify_url

PER_PAGE = 6
COLS = 2
ROWS = 3
MARGIN = 12 * mm
GUTTER = 6 * mm
QR_SIZE = 32 * mm

BRAND = colors.HexColor("#0b5394")


def _draw_ticket(c, t, info, x, y, w, h):
    reg = t.registration
    c.setStrokeColor(colors.grey)
    c.setDash(3, 3)
    c.rect(x, y, w, h)
    c.setDash()

    # header band
    c.setFillColor(BRAND)
    c.rect(x, y + h - 14 * mm, w, 14 * mm, stroke=0, fill=1)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 11)
    c.drawString(x + 4 * mm, y + h - 7 * mm, info["event_name"][:40])
    c.setFont("Helvetica", 8)
    kind = "VIP" if reg.is_ems_client else "Standard"
    c.drawString(x + 4 * mm, y + h - 11.5 * mm, f"{kind} ticket #{t.sequence}")

    c.setFillColor(colors.black)
    line_y = y + h - 21 * mm
    c.setFont("Helvetica-Bold", 9)
    c.drawString(x + 4 * mm, line_y, t.ticket_number)
    c.setFont("Helvetica", 8)
    rows = [
        t.ticket_type.name if t.ticket_type else "Event Access",
        f"{reg.first_name} {reg.last_name}".strip(),
        reg.email,
        reg.phone,
        f"{info['event_start_date']} to {info['event_end_date']}",
        info["venue_name"],
        info["booth_location"],
    ]
    for row in rows:
        line_y -= 4.5 * mm
        c.drawString(x + 4 * mm, line_y, (row or "")[:38])

    png = qr_png_bytes(verify_url(t.ticket_number))
    c.drawImage(ImageReader(BytesIO(png)), x + w - QR_SIZE - 4 * mm, y + 6 * mm,
                QR_SIZE, QR_SIZE, mask="auto")
    c.setFont("Helvetica", 6)
    c.drawString(x + 4 * mm, y + 3 * mm, "Present this QR code at the entrance. Valid for one entry.")


def render_tickets_pdf(tickets) -> bytes:
    """A4 sheet, six tickets per page in a 2 x 3 grid."""
    tickets = list(tickets)
    info = event_info()
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"{info['event_name']} tickets")
    width, height = A4
    cell_w = (width - 2 * MARGIN - (COLS - 1) * GUTTER) / COLS
    cell_h = (height - 2 * MARGIN - (ROWS - 1) * GUTTER) / ROWS

    for i, t in enumerate(tickets):
        slot = i % PER_PAGE
        if i and slot == 0:
            c.showPage()
        col = slot % COLS
        row = slot // COLS
        x = MARGIN + col * (cell_w + GUTTER)
        y = height - MARGIN - (row + 1) * cell_h - row * GUTTER
        _draw_ticket(c, t, info, x, y, cell_w, cell_h)

    if not tickets:
        c.setFont("Helvetica", 12)
        c.drawString(MARGIN, height - MARGIN, "No tickets.")
    c.showPage()
    c.save()
    buf.seek(0)
    return buf.getvalue()


def pdf_filename(registration) -> str:
    return f"EMS-tickets-{str(registration.reference)[:8]}.pdf"
