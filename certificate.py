"""
Printable gate pass certificate (A4 PDF).

Fixed two-colour layout: navy header and footer bands, green approval badge.
Positions are given in millimetres from the top-left corner of the page and
converted to reportlab's bottom-left origin by ``_y``.
"""
from datetime import datetime
from io import BytesIO
from typing import Optional

import qrcode
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from schemas import ApplicationStatus, GatePassApplication

PAGE_WIDTH, PAGE_HEIGHT = A4

PRIMARY = (0, 33, 71)
ACCENT = (34, 197, 94)
GRAY = (100, 100, 100)

PLACEHOLDER = "N/A"

INSTITUTION = "RAJIV GANDHI INSTITUTE OF PETROLEUM TECHNOLOGY"
INSTITUTION_ADDRESS = "An Institution of National Importance, Jais, Amethi - 229304"
INSTRUCTIONS = (
    "1. Student must carry original RGIPT ID Card at all times.",
    "2. Present this PDF on mobile or physical copy to Gate Security for QR/ID verification.",
    "3. Violation of return timing may lead to disciplinary action.",
)


def _rgb(color):
    return tuple(c / 255 for c in color)


def _y(top_mm: float) -> float:
    return PAGE_HEIGHT - top_mm * mm


def certificate_filename(record: GatePassApplication) -> str:
    return f"RGIPT_GATEPASS_{record.gate_pass_number or PLACEHOLDER}.pdf"


def _qr_image(record: GatePassApplication) -> ImageReader:
    img = qrcode.make(f"{record.gate_pass_number}|{record.id}")
    buf = BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return ImageReader(buf)


def render_certificate(record: GatePassApplication, issued_at: Optional[datetime] = None) -> bytes:
    """Render ``record`` as PDF bytes.

    Only approved passes carry a real number; anything else renders the
    identifier and badge fields as ``N/A``.
    """
    approved = record.status == ApplicationStatus.APPROVED and bool(record.gate_pass_number)
    number = record.gate_pass_number if approved else PLACEHOLDER
    issued_at = issued_at or datetime.now()

    buf = BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4)
    pdf.setTitle(f"Gate Pass {number}")

    # Header band
    pdf.setFillColorRGB(*_rgb(PRIMARY))
    pdf.rect(0, _y(50), PAGE_WIDTH, 50 * mm, stroke=0, fill=1)
    pdf.setFillColorRGB(1, 1, 1)
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawCentredString(105 * mm, _y(20), INSTITUTION)
    pdf.setFont("Helvetica", 10)
    pdf.drawCentredString(105 * mm, _y(28), INSTITUTION_ADDRESS)
    pdf.setFont("Helvetica-Bold", 14)
    pdf.drawCentredString(105 * mm, _y(42), "DIGITAL GATE PASS CERTIFICATE")

    # Frame
    pdf.setStrokeColorRGB(230 / 255, 230 / 255, 230 / 255)
    pdf.setLineWidth(0.5)
    pdf.rect(10 * mm, _y(275), 190 * mm, 220 * mm, stroke=1, fill=0)

    # Identifier
    pdf.setFillColorRGB(*_rgb(PRIMARY))
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(20 * mm, _y(75), "GATE PASS IDENTIFIER:")
    pdf.setFont("Courier-Bold", 28)
    pdf.drawString(20 * mm, _y(88), number)

    # Approval badge
    pdf.setStrokeColorRGB(*_rgb(ACCENT))
    pdf.setLineWidth(2)
    pdf.roundRect(145 * mm, _y(90), 45 * mm, 25 * mm, 3 * mm, stroke=1, fill=0)
    pdf.setFillColorRGB(*_rgb(ACCENT))
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawCentredString(167.5 * mm, _y(78), "APPROVED" if approved else PLACEHOLDER)
    pdf.setFont("Helvetica-Bold", 8)
    pdf.drawCentredString(167.5 * mm, _y(85), "DIGITALLY SIGNED" if approved else "")

    pdf.setStrokeColorRGB(240 / 255, 240 / 255, 240 / 255)
    pdf.setLineWidth(0.5)
    pdf.line(20 * mm, _y(100), 190 * mm, _y(100))

    # Identity fields
    fields = [
        ("Student Name", record.student_name),
        ("Roll Number", record.roll_number),
        ("Academic Program", record.program),
        ("Current Year", f"{record.year} Year"),
        ("Phone Number", f"+91 {record.contact_number}"),
        ("Final Destination", record.place),
        ("Stated Purpose", record.purpose),
    ]
    current_y = 115
    for label, value in fields:
        pdf.setFont("Helvetica-Bold", 10)
        pdf.setFillColorRGB(*_rgb(GRAY))
        pdf.drawString(20 * mm, _y(current_y), label.upper() + ":")
        pdf.setFont("Helvetica", 10)
        pdf.setFillColorRGB(0, 0, 0)
        pdf.drawString(65 * mm, _y(current_y), str(value or PLACEHOLDER))
        current_y += 12

    if approved:
        pdf.drawImage(_qr_image(record), 155 * mm, _y(145), 35 * mm, 35 * mm)

    # Travel schedule
    current_y += 10
    pdf.setFillColorRGB(248 / 255, 250 / 255, 252 / 255)
    pdf.rect(20 * mm, _y(current_y + 30), 170 * mm, 35 * mm, stroke=0, fill=1)
    pdf.setFont("Helvetica-Bold", 10)
    pdf.setFillColorRGB(*_rgb(PRIMARY))
    pdf.drawCentredString(105 * mm, _y(current_y + 5), "OFFICIAL TRAVEL SCHEDULE")

    pdf.setFont("Helvetica-Bold", 9)
    pdf.setFillColorRGB(0, 0, 0)
    pdf.drawString(30 * mm, _y(current_y + 18), "DEPARTURE FROM CAMPUS:")
    pdf.drawString(120 * mm, _y(current_y + 18), "EXPECTED RETURN BY:")
    pdf.setFont("Helvetica", 9)
    pdf.drawString(30 * mm, _y(current_y + 23), f"{record.departure_date} at {record.departure_time}")
    pdf.drawString(120 * mm, _y(current_y + 23), f"{record.arrival_date} at {record.arrival_time}")

    # Instructions
    current_y += 45
    pdf.setStrokeColorRGB(1, 200 / 255, 0)
    pdf.line(20 * mm, _y(current_y), 190 * mm, _y(current_y))
    pdf.setFont("Helvetica", 8)
    pdf.setFillColorRGB(150 / 255, 150 / 255, 150 / 255)
    pdf.drawString(20 * mm, _y(current_y + 6), "SECURITY INSTRUCTIONS:")
    for i, line in enumerate(INSTRUCTIONS):
        pdf.drawString(20 * mm, _y(current_y + 11 + 5 * i), line)

    # Footer band
    pdf.setFillColorRGB(*_rgb(PRIMARY))
    pdf.rect(0, 0, PAGE_WIDTH, 17 * mm, stroke=0, fill=1)
    pdf.setFillColorRGB(1, 1, 1)
    pdf.setFont("Helvetica", 7)
    pdf.drawCentredString(105 * mm, _y(287),
                          "© Rajiv Gandhi Institute of Petroleum Technology - Digital Governance Cell")
    pdf.drawCentredString(105 * mm, _y(292),
                          f"Verify this pass at: gatepass.rgipt.ac.in | Timestamp: {issued_at:%d/%m/%Y, %I:%M:%S %p}")

    pdf.showPage()
    pdf.save()
    return buf.getvalue()
