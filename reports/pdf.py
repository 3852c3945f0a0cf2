from datetime import datetime
from pathlib import Path

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from data.models import AnalysisResult

OUTPUT_DIR = Path(__file__).parent.parent / "output" / "reports"

STATUS_COLORS = {
    "under": colors.Color(0.9, 0.2, 0.2),
    "over": colors.Color(0.9, 0.6, 0.1),
}

HEADER_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("BACKGROUND", (0, 0), (-1, 0), colors.Color(0.9, 0.9, 0.95)),
    ("FONTSIZE", (0, 0), (-1, -1), 8),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ("TOPPADDING", (0, 0), (-1, -1), 3),
])

LABEL_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 10),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
])


def _money(value: float) -> str:
    return f"${value:,.2f}"


def _grid(header: list[str], rows: list[list[str]]) -> Table:
    table = Table([header] + rows, repeatRows=1)
    table.setStyle(HEADER_STYLE)
    return table


def generate_benchmark_pdf(result: AnalysisResult, output_dir: Path | None = None, top: int = 50) -> Path:
    """Render totals, group benchmarks and audit findings as a PDF."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    filename = f"payment_benchmark_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"
    output_path = output_dir / filename

    doc = SimpleDocTemplate(str(output_path), pagesize=landscape(letter),
                            leftMargin=0.5 * inch, rightMargin=0.5 * inch,
                            topMargin=0.5 * inch, bottomMargin=0.5 * inch)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("CustomTitle", parent=styles["Title"], fontSize=18, spaceAfter=12)
    heading_style = ParagraphStyle("CustomHeading", parent=styles["Heading2"], fontSize=14,
                                   spaceBefore=16, spaceAfter=8,
                                   textColor=colors.Color(0.2, 0.2, 0.4))
    body_style = styles["BodyText"]
    small_style = ParagraphStyle("Small", parent=body_style, fontSize=8, textColor=colors.grey)

    config = result.config
    elements = []

    # --- Title ---
    elements.append(Paragraph("Insurance Payment Benchmark Report", title_style))
    elements.append(Paragraph(f"Generated: {datetime.now().strftime('%B %d, %Y %I:%M %p')}", small_style))
    elements.append(Paragraph(
        f"Benchmark: {config.benchmark.label} | Threshold: ±{config.threshold:g}% | "
        f"Units in key: {'yes' if config.include_units_in_key else 'no'} | "
        f"Decontaminate: {'on' if config.decontaminate else 'off'} | "
        f"Overrides: {len(config.overrides)}",
        small_style,
    ))
    elements.append(Spacer(1, 12))

    # --- Totals ---
    totals = result.totals
    if totals:
        elements.append(Paragraph("Totals", heading_style))
        totals_table = Table([
            ["Lines", f"{len(result.lines):,}"],
            ["Groups", f"{len(result.groups):,}"],
            ["Total Insurance Paid", _money(totals.total_insurance_paid)],
            [f"Actual ({totals.benchmark_label})", _money(totals.total_actual)],
            ["Expected (proxy × n)", _money(totals.total_expected)],
            ["Expected - Actual", _money(totals.delta)],
        ], colWidths=[2.5 * inch, 3 * inch])
        totals_table.setStyle(LABEL_STYLE)
        elements.append(totals_table)

    # --- Group benchmarks ---
    if result.groups:
        elements.append(Paragraph("Group Benchmarks", heading_style))
        rows = [
            [s.key.payer, s.key.procedure_code, s.key.place_of_service, s.key.modifiers, s.units,
             str(s.n), _money(s.proxy), s.method + (" (cleaned)" if s.used_decontaminate else ""),
             _money(s.median), _money(s.mean), f"{_money(s.min)} – {_money(s.max)}",
             str(s.n_eq_charges), s.warning]
            for s in result.groups
        ]
        elements.append(_grid(
            ["Payer", "CPT", "POS", "Mods", "Units", "n", "Proxy", "Method",
             "Median", "Mean", "Range", "=Charges", "Warning"],
            rows,
        ))

    # --- Issues ---
    flagged = [i for i in result.issues if i.out_of_range][:top]
    if flagged:
        elements.append(Paragraph(f"Top {len(flagged)} Deviations", heading_style))
        rows = []
        style = TableStyle([])
        for row_num, issue in enumerate(flagged, 1):
            d = issue.line
            rows.append([d.patient, d.service_date, d.payer, d.procedure_code, d.place_of_service,
                         d.modifiers, _money(issue.metric), _money(issue.proxy),
                         f"{issue.deviation_pct:.1f}%", issue.status])
            band = "under" if issue.deviation_pct < 0 else "over"
            style.add("TEXTCOLOR", (9, row_num), (9, row_num), STATUS_COLORS[band])
        table = _grid(["Patient", "DOS", "Payer", "CPT", "POS", "Mods",
                       config.benchmark.label, "Proxy", "Deviation", "Status"], rows)
        table.setStyle(style)
        elements.append(table)

    # --- Proxy audits ---
    if result.proxy_audits:
        elements.append(Paragraph("Proxy Audit (low-confidence overpayments)", heading_style))
        rows = [
            [a.line.patient, a.line.payer, a.line.procedure_code, _money(a.line.charges),
             _money(a.metric), _money(a.proxy), str(a.n_in_group), a.method,
             a.note]
            for a in result.proxy_audits[:top]
        ]
        elements.append(_grid(["Patient", "Payer", "CPT", "Charges", "Metric", "Proxy", "n",
                               "Method", "Note"], rows))

    # --- Denials ---
    if result.denials:
        elements.append(Paragraph("Denials / Full Write-offs", heading_style))
        rows = [
            [e.line.patient, e.line.service_date, e.line.payer, e.line.procedure_code,
             _money(e.line.charges), _money(e.line.insurance_paid), _money(e.line.adjustment),
             e.reason.value.replace("_", " ")]
            for e in result.denials[:top]
        ]
        elements.append(_grid(["Patient", "DOS", "Payer", "CPT", "Charges", "Ins Paid",
                               "Adjustment", "Reason"], rows))

    # --- Unpaid patients ---
    if result.unpaid_patients:
        elements.append(Paragraph("Patients With $0 Insurer Reimbursement", heading_style))
        rows = [
            [p.patient, p.payers, _money(p.total_charges), _money(p.total_allowed),
             _money(p.total_insurance_paid), _money(p.total_balance), _money(p.unpaid_gap)]
            for p in result.unpaid_patients[:top]
        ]
        elements.append(_grid(["Patient", "Insurances", "Charges", "Allowed", "Ins Paid",
                               "Balance", "Unpaid Gap"], rows))

    # --- Disclaimer ---
    elements.append(Spacer(1, 24))
    elements.append(Paragraph(
        "Proxies are derived from the loaded export only: the most frequent payment per group, "
        "ties broken toward the higher amount, or the maximum when a group has two lines or fewer. "
        "Deviations warrant review against the payer contract and do not by themselves establish "
        "an underpayment or overpayment.",
        ParagraphStyle("Disclaimer", parent=small_style, fontSize=7, textColor=colors.grey)
    ))

    doc.build(elements)
    return output_path
