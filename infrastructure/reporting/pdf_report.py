from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from application.reports import OwnerReport

HEADER = ["Game", "Date", "Players", "Pot", "Payout", "Profit"]


def _money(value: float) -> str:
    return f"{value:,.2f}"


def _draw_page_number(canvas, doc) -> None:
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    canvas.drawRightString(doc.pagesize[0] - 2 * cm, 1.2 * cm, f"Page {doc.page}")
    canvas.restoreState()


def render_owner_report(report: OwnerReport, generated_at: Optional[datetime] = None) -> BytesIO:
    """
    Render the owner report as a paginated PDF.

    One section per agent lists its games followed by the agent subtotal;
    the document ends with the grand total across all agents.
    """

    generated_at = generated_at or datetime.now()
    styles = getSampleStyleSheet()
    buf = BytesIO()

    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        title="Owner profit report",
        leftMargin=2 * cm,
        rightMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2 * cm,
    )

    story = [
        Paragraph("Owner profit report", styles["Title"]),
        Paragraph(f"Generated {generated_at:%Y-%m-%d %H:%M}", styles["Normal"]),
        Spacer(1, 0.6 * cm),
    ]

    if not report.sections:
        story.append(Paragraph("No completed games yet.", styles["Normal"]))

    for section in report.sections:
        story.append(
            Paragraph(
                escape(f"{section.agent_name} ({section.agent_phone})"), styles["Heading2"]
            )
        )

        rows = [HEADER]
        for line in section.lines:
            rows.append(
                [
                    str(line.game_id),
                    line.date,
                    str(line.players),
                    _money(line.pot),
                    _money(line.winner_money),
                    _money(line.profit),
                ]
            )
        rows.append(["", "", "", "", "Subtotal", _money(section.subtotal)])

        table = Table(rows, repeatRows=1, hAlign="LEFT")
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2c3e50")),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
                    ("GRID", (0, 0), (-1, -2), 0.25, colors.lightgrey),
                    ("LINEABOVE", (0, -1), (-1, -1), 0.75, colors.black),
                    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ]
            )
        )
        story.append(table)
        story.append(Spacer(1, 0.5 * cm))

    story.append(Paragraph(f"Grand total: {_money(report.grand_total)}", styles["Heading2"]))

    doc.build(story, onFirstPage=_draw_page_number, onLaterPages=_draw_page_number)
    buf.seek(0)
    return buf
