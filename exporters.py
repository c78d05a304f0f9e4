"""
Export module — turns the current ContractData into a downloadable PDF or
Word (.docx) report.  Rendering only; no network access.
"""

import io
from datetime import datetime

from models import ContractData


# ─────────────────────────────────────────────────────────────────────────────
# Shared helpers
# ─────────────────────────────────────────────────────────────────────────────

INDIGO = ( 79,  70, 229)
DARK   = ( 13,  13,  13)
GREY   = (100, 100, 100)
LGREY  = (220, 220, 220)

DISCLAIMER = ("This report is for informational purposes only and does not "
              "constitute legal advice.")

def _now() -> str:
    return datetime.now().strftime("%B %d, %Y at %H:%M")

def sections(data: ContractData) -> list:
    """(title, text) pairs in display order."""
    return [
        ("Analysis",     data.analysis),
        ("Key Points",   data.key_points),
        ("Negotiations", data.negotiations),
    ]

def _paragraphs(text: str) -> list:
    return [p.strip() for p in text.split("\n\n") if p.strip()]


# ─────────────────────────────────────────────────────────────────────────────
# PDF report  (ReportLab)
# ─────────────────────────────────────────────────────────────────────────────

def export_pdf(data: ContractData) -> bytes:
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
    from reportlab.lib.units import mm
    from reportlab.lib import colors
    from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, HRFlowable
    from xml.sax.saxutils import escape

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        leftMargin=20*mm, rightMargin=20*mm,
        topMargin=18*mm, bottomMargin=18*mm,
        title="Contract Analysis Report"
    )

    def rgb(t):  return colors.Color(*[v/255 for v in t])

    accent_c = rgb(INDIGO)
    dark_c   = rgb(DARK)
    grey_c   = rgb(GREY)
    lgrey_c  = rgb(LGREY)

    base = getSampleStyleSheet()

    def sty(name, parent="Normal", **kw):
        return ParagraphStyle(name, parent=base[parent], **kw)

    s_title = sty("title", fontSize=22, leading=28, textColor=dark_c, spaceAfter=4, fontName="Helvetica-Bold")
    s_small = sty("small", fontSize=8,  leading=12, textColor=grey_c, spaceAfter=2)
    s_h2    = sty("h2",    fontSize=13, leading=18, textColor=dark_c, spaceBefore=14, spaceAfter=6, fontName="Helvetica-Bold")
    s_body  = sty("body",  fontSize=9,  leading=14, textColor=dark_c, spaceAfter=6)

    story = [
        Paragraph("Contract Analysis Report", s_title),
        Paragraph(f"Generated {_now()}", s_small),
        HRFlowable(width="100%", thickness=2, color=accent_c, spaceAfter=12),
    ]

    for title, text in sections(data):
        story.append(Paragraph(title, s_h2))
        story.append(HRFlowable(width="100%", thickness=0.5, color=lgrey_c, spaceAfter=8))
        paras = _paragraphs(text)
        if not paras:
            story.append(Paragraph("<i>Nothing returned for this section.</i>", s_small))
        for para in paras:
            story.append(Paragraph(escape(para).replace("\n", "<br/>"), s_body))
        story.append(Spacer(1, 6))

    story.append(HRFlowable(width="100%", thickness=0.5, color=lgrey_c, spaceBefore=10, spaceAfter=6))
    story.append(Paragraph(f"<i>{DISCLAIMER}</i>", s_small))

    doc.build(story)
    return buf.getvalue()


# ─────────────────────────────────────────────────────────────────────────────
# Word (.docx) export
# ─────────────────────────────────────────────────────────────────────────────

def export_word(data: ContractData) -> bytes:
    from docx import Document
    from docx.shared import Pt, RGBColor, Cm

    doc = Document()

    for section in doc.sections:
        section.top_margin    = Cm(2)
        section.bottom_margin = Cm(2)
        section.left_margin   = Cm(2.5)
        section.right_margin  = Cm(2.5)

    def add_para(text="", italic=False, color=None, size=10):
        p = doc.add_paragraph()
        run = p.add_run(text)
        run.italic = italic
        run.font.size = Pt(size)
        if color: run.font.color.rgb = RGBColor(*color)
        return p

    title = doc.add_heading("Contract Analysis Report", 0)
    title.runs[0].font.color.rgb = RGBColor(*DARK)
    add_para(f"Generated: {_now()}", color=GREY, size=9)

    for heading, text in sections(data):
        h = doc.add_heading(heading, level=1)
        for run in h.runs:
            run.font.color.rgb = RGBColor(*INDIGO)
        paras = _paragraphs(text)
        if not paras:
            add_para("Nothing returned for this section.", italic=True, color=GREY, size=9)
        for para in paras:
            add_para(para)

    add_para("─" * 60, color=LGREY, size=8)
    add_para(DISCLAIMER, italic=True, color=GREY, size=8)

    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()
