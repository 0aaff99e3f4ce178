"""
PDF-Generierung für Compliance-Reports.
Gibt bytes zurück – die Ablage übernimmt der ReportGenerator.
"""
from __future__ import annotations

import io
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, KeepTogether
from xml.sax.saxutils import escape

from app.schemas.compliance import RuleSet, Severity, ViolationType

if TYPE_CHECKING:
    from app.models.compliance import ComplianceViolation
    from app.schemas.compliance import ReportSummary, RuleConfig


# ── Farben (druckfreundlich) ──────────────────────────────────────────────────

_NAVY   = colors.HexColor("#1E3A5F")   # Header-Hintergrund
_LIGHT  = colors.HexColor("#F0F4F8")   # Tabellen-Zebrierung
_WHITE  = colors.white
_GRAY   = colors.HexColor("#6B7280")
_AMBER  = colors.HexColor("#D97706")
_RED    = colors.HexColor("#DC2626")
_GRID   = colors.HexColor("#E5E7EB")


# ── Beschriftungen ────────────────────────────────────────────────────────────

RULE_SET_LABELS = {
    RuleSet.EU: "EU-Arbeitszeitrichtlinie",
    RuleSet.DE: "Arbeitszeitgesetz (ArbZG)",
}

TYPE_LABELS = {
    ViolationType.REST_PERIOD_VIOLATION:     "Ruhezeit unterschritten",
    ViolationType.SHIFT_DURATION_VIOLATION:  "Schichtdauer überschritten",
    ViolationType.BREAK_MISSING:             "Pause fehlt",
    ViolationType.WEEKLY_REST_VIOLATION:     "Wöchentliche Ruhezeit unterschritten",
    ViolationType.MAX_WORKING_TIME_EXCEEDED: "Wöchentliche Höchstarbeitszeit überschritten",
}

SEVERITY_LABELS = {
    Severity.WARNING: "Warnung",
    Severity.ERROR:   "Fehler",
}


def _fmt_dt(val: datetime, config: "RuleConfig") -> str:
    return val.astimezone(config.tz).strftime("%d.%m.%Y %H:%M")


def _fmt_date(val: datetime, config: "RuleConfig") -> str:
    return val.astimezone(config.tz).strftime("%d.%m.%Y")


def _tbl_style(base: list) -> TableStyle:
    return TableStyle(base)


def _page_footer(canvas, doc) -> None:
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(_GRAY)
    canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Seite {doc.page}")
    canvas.drawString(2 * cm, 1.2 * cm, doc.title)
    canvas.restoreState()


# ── Haupt-Funktion ────────────────────────────────────────────────────────────

def render_violations_pdf(
    violations: Iterable["ComplianceViolation"],
    config: "RuleConfig",
    period_start: datetime,
    period_end: datetime,
    summary: "ReportSummary",
    generated_at: datetime,
) -> bytes:
    """Erstellt einen Compliance-Report als PDF und gibt die Bytes zurück."""

    buf = io.BytesIO()
    title = (
        f"Compliance-Report {_fmt_date(period_start, config)} – {_fmt_date(period_end, config)}"
    )
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=2 * cm,
        rightMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2 * cm,
        title=title,
        invariant=True,
    )

    styles = getSampleStyleSheet()
    normal = styles["Normal"]
    normal.fontName = "Helvetica"
    normal.fontSize = 9
    normal.leading = 13

    heading = ParagraphStyle(
        "heading",
        parent=normal,
        fontSize=11,
        fontName="Helvetica-Bold",
        textColor=_NAVY,
        spaceAfter=4,
    )
    small_gray = ParagraphStyle(
        "small_gray",
        parent=normal,
        fontSize=8,
        textColor=_GRAY,
    )

    story = []
    page_w = A4[0] - 4 * cm  # nutzbare Breite

    # ── Header ────────────────────────────────────────────────────────────────
    header_tbl = Table(
        [[
            Paragraph("<font color='white'><b>Compliance-Report</b></font>", normal),
            Paragraph(
                f"<font color='white'>{escape(RULE_SET_LABELS[config.rule_set])}</font>", normal
            ),
        ]],
        colWidths=[page_w * 0.5, page_w * 0.5],
    )
    header_tbl.setStyle(_tbl_style([
        ("BACKGROUND",  (0, 0), (-1, -1), _NAVY),
        ("ALIGN",       (1, 0), (1, 0),   "RIGHT"),
        ("TOPPADDING",  (0, 0), (-1, -1), 8),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
        ("LEFTPADDING", (0, 0), (-1, -1), 10),
        ("RIGHTPADDING", (0, 0), (-1, -1), 10),
    ]))
    story.append(header_tbl)
    story.append(Spacer(1, 0.3 * cm))
    story.append(Paragraph(
        f"Zeitraum: {_fmt_dt(period_start, config)} bis {_fmt_dt(period_end, config)} "
        f"({escape(config.timezone)})",
        normal,
    ))
    story.append(Spacer(1, 0.4 * cm))

    # ── Zusammenfassung ───────────────────────────────────────────────────────
    story.append(Paragraph("Zusammenfassung", heading))

    summary_rows = [["", "Anzahl"], ["Verstöße gesamt", str(summary.total_violations)]]
    for severity in Severity:
        summary_rows.append([SEVERITY_LABELS[severity], str(summary.violations_by_severity.get(severity, 0))])
    for vtype in ViolationType:
        summary_rows.append([TYPE_LABELS[vtype], str(summary.violations_by_type.get(vtype, 0))])

    summary_tbl = Table(summary_rows, colWidths=[page_w * 0.75, page_w * 0.25])
    summary_tbl.setStyle(_tbl_style([
        ("BACKGROUND",    (0, 0), (-1, 0),  _NAVY),
        ("TEXTCOLOR",     (0, 0), (-1, 0),  _WHITE),
        ("FONTNAME",      (0, 0), (-1, 0),  "Helvetica-Bold"),
        ("FONTNAME",      (0, 1), (-1, 1),  "Helvetica-Bold"),
        ("FONTSIZE",      (0, 0), (-1, -1), 9),
        ("ALIGN",         (1, 0), (1, -1),  "RIGHT"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [_WHITE, _LIGHT]),
        ("TOPPADDING",    (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ("LEFTPADDING",   (0, 0), (-1, -1), 6),
        ("RIGHTPADDING",  (0, 0), (-1, -1), 6),
        ("GRID",          (0, 0), (-1, -1), 0.25, _GRID),
    ]))
    story.append(summary_tbl)
    story.append(Spacer(1, 0.5 * cm))

    # ── Verstöße ──────────────────────────────────────────────────────────────
    story.append(Paragraph("Verstöße", heading))

    count = 0
    for v in violations:
        count += 1
        details = v.details or {}
        severity = Severity(v.severity)
        status = "Erkannt" if v.acknowledged_at else "Offen"
        rows = [
            [TYPE_LABELS[ViolationType(v.violation_type)], SEVERITY_LABELS[severity]],
            ["Mitarbeiter", escape(v.user_id)],
            ["Erkannt am", _fmt_dt(v.detected_at, config)],
            ["Zeitraum", f"{_fmt_dt(v.period_start, config)} – {_fmt_dt(v.period_end, config)}"],
            ["Erwartet / Tatsächlich", f"{details.get('expected', '–')} / {details.get('actual', '–')} Min"],
            ["Einträge", Paragraph(escape(", ".join(details.get("affected_entries", []))) or "–", small_gray)],
            ["Status", status],
        ]
        block = Table(rows, colWidths=[page_w * 0.3, page_w * 0.7])
        block.setStyle(_tbl_style([
            ("BACKGROUND",    (0, 0), (-1, 0),  _LIGHT),
            ("FONTNAME",      (0, 0), (-1, 0),  "Helvetica-Bold"),
            ("TEXTCOLOR",     (1, 0), (1, 0),   _RED if severity == Severity.ERROR else _AMBER),
            ("ALIGN",         (1, 0), (1, 0),   "RIGHT"),
            ("FONTNAME",      (0, 1), (0, -1),  "Helvetica-Bold"),
            ("FONTSIZE",      (0, 0), (-1, -1), 9),
            ("VALIGN",        (0, 0), (-1, -1), "TOP"),
            ("TOPPADDING",    (0, 0), (-1, -1), 3),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ("LEFTPADDING",   (0, 0), (-1, -1), 6),
            ("RIGHTPADDING",  (0, 0), (-1, -1), 6),
            ("BOX",           (0, 0), (-1, -1), 0.5, _GRID),
        ]))
        story.append(KeepTogether([block, Spacer(1, 0.3 * cm)]))

    if count == 0:
        story.append(Paragraph("Keine Verstöße im Zeitraum.", normal))

    # ── Footer ────────────────────────────────────────────────────────────────
    story.append(Spacer(1, 0.5 * cm))
    story.append(Paragraph(
        f"Erstellt am {_fmt_dt(generated_at, config)}",
        small_gray,
    ))

    doc.build(story, onFirstPage=_page_footer, onLaterPages=_page_footer)
    return buf.getvalue()
